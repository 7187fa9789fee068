"""SM-2 spaced repetition algorithm (lapses keep their ease)."""
import math
from datetime import datetime, timedelta
from typing import Optional

from study_portal.models import MIN_EASE


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def sm2_update(
    quality: int,
    repetition_count: int,
    ease: float,
    interval_days: int,
) -> dict:
    """Calculate next review parameters using SM-2.

    Args:
        quality: Rating 0-5 (0=complete blackout, 5=perfect)
        repetition_count: Consecutive successful reviews since the last lapse
        ease: Current ease factor (minimum 1.3)
        interval_days: Current interval in days (minimum 1)

    Returns:
        Dict with updated repetition_count, interval_days, ease.

    Raises:
        ValueError: if any argument is outside its documented domain.
    """
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
        raise ValueError(f"quality must be an integer 0-5, got {quality!r}")
    if repetition_count < 0:
        raise ValueError(f"repetition_count must be >= 0, got {repetition_count}")
    if interval_days < 1:
        raise ValueError(f"interval_days must be >= 1, got {interval_days}")
    if ease < MIN_EASE:
        raise ValueError(f"ease must be >= {MIN_EASE}, got {ease}")

    if quality < 3:
        # Lapse: streak and interval reset, difficulty estimate untouched
        return {
            "repetition_count": 0,
            "interval_days": 1,
            "ease": round(ease, 2),
        }

    new_repetitions = repetition_count + 1
    if new_repetitions == 1:
        new_interval = 1
    elif new_repetitions == 2:
        new_interval = 6
    else:
        new_interval = max(1, _round_half_away(interval_days * ease))

    new_ease = ease + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    new_ease = max(MIN_EASE, new_ease)

    return {
        "repetition_count": new_repetitions,
        "interval_days": new_interval,
        "ease": round(new_ease, 2),
    }


def next_review_at(reviewed_at: datetime, interval_days: int) -> datetime:
    return reviewed_at + timedelta(days=interval_days)


def is_due(next_review: Optional[datetime], now: datetime) -> bool:
    """A card with no scheduled review yet is always due."""
    return next_review is None or next_review <= now
