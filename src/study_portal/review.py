"""Flashcard review: due queue, review submission and the session loop."""
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional

from study_portal.auth import check_deck_owner
from study_portal.errors import (
    CardNotFound, InvalidQuality, InvalidTransition, PersistenceError, ReviewError,
    ReviewInProgress,
)
from study_portal.models import Card, utcnow
from study_portal.sm2 import next_review_at, sm2_update
from study_portal.store import CardStore

log = logging.getLogger(__name__)

RESULT_LABELS = {"again": 0, "hard": 2, "good": 4, "easy": 5}


def resolve_quality(quality=None, label: Optional[str] = None) -> int:
    """Turn a numeric quality or a result label into a 0-5 integer.

    A numeric quality wins when both are given. Integral floats (``4.0``) are
    accepted; anything else outside 0-5 raises InvalidQuality.
    """
    if quality is not None:
        if isinstance(quality, bool) or not isinstance(quality, (int, float)):
            raise InvalidQuality(f"Invalid quality {quality!r}: expected an integer 0-5")
        if isinstance(quality, float):
            if not quality.is_integer():
                raise InvalidQuality(f"Invalid quality {quality!r}: expected an integer 0-5")
            quality = int(quality)
        if not 0 <= quality <= 5:
            raise InvalidQuality(f"Invalid quality {quality}: expected 0-5")
        return quality
    if label is not None:
        key = str(label).strip().lower()
        if key not in RESULT_LABELS:
            raise InvalidQuality(
                f"Unknown result {label!r}: expected one of {', '.join(RESULT_LABELS)}"
            )
        return RESULT_LABELS[key]
    raise InvalidQuality("Invalid quality (0..5) or result label required")


def load_due_queue(
    store: CardStore,
    owner_id: int,
    deck_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[Card]:
    """Snapshot of the learner's due cards.

    Without *deck_ids* every deck the learner owns is in scope; an explicit
    filter must only name decks the learner owns.
    """
    if deck_ids is None:
        scope = store.owned_deck_ids(owner_id)
    else:
        scope = list(deck_ids)
        for deck_id in scope:
            check_deck_owner(store, deck_id, owner_id)
    cards = store.get_due_cards(scope, due=True, now=now, limit=limit)
    log.info("Loaded %d due cards for learner %s across %d decks", len(cards), owner_id, len(scope))
    return cards


def submit_review(
    store: CardStore,
    card_id: int,
    quality=None,
    label: Optional[str] = None,
    owner_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Card:
    """Validate, schedule and persist one review. Returns the updated card.

    The card is read once and written once; the write carries the revision
    that was read so a concurrent review of the same card raises StaleCard.
    """
    quality = resolve_quality(quality, label)
    card = store.get_card(card_id)
    if card is None:
        raise CardNotFound(card_id)
    if owner_id is not None:
        check_deck_owner(store, card.deck_id, owner_id)

    updated = sm2_update(
        quality=quality,
        repetition_count=card.repetition_count,
        ease=card.ease,
        interval_days=card.interval_days,
    )
    reviewed_at = (now or utcnow()).replace(microsecond=0)
    fields = dict(
        updated,
        last_reviewed=reviewed_at,
        next_review_at=next_review_at(reviewed_at, updated["interval_days"]),
    )
    saved = store.update_card(card_id, fields, expected_revision=card.revision)
    log.info(
        "Reviewed card %d (q=%d) -> reps=%d ease=%.2f interval=%d next=%s",
        card_id, quality, saved.repetition_count, saved.ease, saved.interval_days,
        saved.next_review_at,
    )
    return saved


class SessionState(Enum):
    FETCHING = "fetching"
    PRESENTING = "presenting"
    REVEALED = "revealed"
    SUBMITTING = "submitting"
    IDLE_EMPTY = "idle_empty"
    ABANDONED = "abandoned"


class ReviewSession:
    """One learner working through a snapshot of due cards, one card at a time."""

    def __init__(
        self,
        store: CardStore,
        owner_id: int,
        deck_ids: Optional[Iterable[int]] = None,
        limit: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.owner_id = owner_id
        self.deck_ids = list(deck_ids) if deck_ids is not None else None
        self.limit = limit
        self.clock = clock
        self.state = SessionState.FETCHING
        self.queue: list[Card] = []
        self.index = 0
        self.reviewed: list[Card] = []
        self.pending_quality: Optional[int] = None
        self.last_error: Optional[ReviewError] = None
        self._in_flight: set[int] = set()
        self._lock = threading.Lock()
        self._abandon_requested = False

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"Session is {self.state.value}; expected {allowed}")

    def start(self) -> list[Card]:
        self._require(SessionState.FETCHING)
        self.queue = load_due_queue(
            self.store, self.owner_id, self.deck_ids, now=self.clock(), limit=self.limit,
        )
        self.index = 0
        self.state = SessionState.PRESENTING if self.queue else SessionState.IDLE_EMPTY
        return list(self.queue)

    @property
    def current_card(self) -> Optional[Card]:
        if self.state in (SessionState.PRESENTING, SessionState.REVEALED, SessionState.SUBMITTING):
            return self.queue[self.index]
        return None

    @property
    def remaining(self) -> int:
        return max(0, len(self.queue) - self.index)

    @property
    def finished(self) -> bool:
        return self.state in (SessionState.IDLE_EMPTY, SessionState.ABANDONED)

    def reveal(self) -> str:
        self._require(SessionState.PRESENTING)
        self.state = SessionState.REVEALED
        return self.queue[self.index].back

    def submit(self, quality=None, label: Optional[str] = None) -> Card:
        """Review the revealed card.

        On failure the session goes back to REVEALED and the error is
        re-raised. A persistence failure keeps the chosen quality so
        :meth:`retry` can resend it.
        """
        card = self.queue[self.index] if self.index < len(self.queue) else None
        with self._lock:
            if card is not None and card.id in self._in_flight:
                raise ReviewInProgress(card.id)
            self._require(SessionState.REVEALED)
            quality = resolve_quality(quality, label)
            self.pending_quality = None
            self._in_flight.add(card.id)
            self.state = SessionState.SUBMITTING
        try:
            saved = submit_review(
                self.store, card.id, quality, owner_id=self.owner_id, now=self.clock(),
            )
        except PersistenceError as exc:
            log.warning("Review of card %d not saved, keeping quality %d: %s", card.id, quality, exc)
            self._fail(exc, pending=quality)
            raise
        except ReviewError as exc:
            self._fail(exc, pending=None)
            raise
        except Exception as exc:
            # Transport failures (timeouts, dropped connections) are retryable too
            wrapped = PersistenceError(f"Card store call failed: {exc}")
            log.warning("Review of card %d not saved, keeping quality %d: %s", card.id, quality, exc)
            self._fail(wrapped, pending=quality)
            raise wrapped from exc
        finally:
            with self._lock:
                self._in_flight.discard(card.id)

        self.queue[self.index] = saved
        self.reviewed.append(saved)
        self.pending_quality = None
        self.last_error = None
        self._advance()
        return saved

    def retry(self) -> Card:
        """Resend the quality of the last failed submission."""
        if self.pending_quality is None:
            raise InvalidTransition("No failed review to retry")
        return self.submit(self.pending_quality)

    def skip(self) -> None:
        """Move past the current card without reviewing it."""
        self._require(SessionState.PRESENTING, SessionState.REVEALED)
        self.pending_quality = None
        self.last_error = None
        self._advance()

    def abandon(self) -> None:
        """Stop the session. An in-flight submission still completes."""
        if self.state == SessionState.SUBMITTING:
            self._abandon_requested = True
            return
        if not self.finished:
            self.state = SessionState.ABANDONED

    def _fail(self, exc: ReviewError, pending: Optional[int]) -> None:
        self.last_error = exc
        self.pending_quality = pending
        self.state = SessionState.ABANDONED if self._abandon_requested else SessionState.REVEALED

    def _advance(self) -> None:
        self.index += 1
        if self._abandon_requested:
            self.state = SessionState.ABANDONED
        elif self.index >= len(self.queue):
            self.state = SessionState.IDLE_EMPTY
        else:
            self.state = SessionState.PRESENTING
