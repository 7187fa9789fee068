"""Data classes for decks, cards and learners."""
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

DEFAULT_EASE = 2.5
MIN_EASE = 1.3
DEFAULT_INTERVAL = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(moment: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as a sortable UTC ISO-8601 string."""
    if moment is None:
        return None
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class Learner:
    id: int
    name: str
    token: str


@dataclass
class Deck:
    id: int
    owner_id: int
    title: str
    created_at: Optional[datetime] = None


@dataclass
class Card:
    id: int
    deck_id: int
    front: str
    back: str
    repetition_count: int = 0
    interval_days: int = DEFAULT_INTERVAL
    ease: float = DEFAULT_EASE
    next_review_at: Optional[datetime] = None
    last_reviewed: Optional[datetime] = None
    revision: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Card":
        """Build a card from a store row, filling unset scheduling fields with defaults."""
        return cls(
            id=row["id"],
            deck_id=row["deck_id"],
            front=row["front"],
            back=row["back"],
            repetition_count=max(0, row["repetition_count"] or 0),
            interval_days=max(DEFAULT_INTERVAL, row["interval_days"] or DEFAULT_INTERVAL),
            ease=max(MIN_EASE, row["ease"] or DEFAULT_EASE),
            next_review_at=parse_timestamp(row["next_review_at"]),
            last_reviewed=parse_timestamp(row["last_reviewed"]),
            revision=row["revision"] or 0,
            created_at=parse_timestamp(row["created_at"]),
        )

    def to_dict(self) -> dict:
        """JSON-friendly view with timestamps as ISO strings."""
        data = asdict(self)
        for key in ("next_review_at", "last_reviewed", "created_at"):
            data[key] = to_timestamp(data[key])
        return data
