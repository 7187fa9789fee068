"""Request handlers for the flashcard endpoints.

Each handler takes the raw ``Authorization`` header and already-parsed request
data, and returns ``(status, body)`` where *body* is a JSON-serializable dict.
Errors never escape as exceptions.
"""
import logging
from typing import Callable, Optional

from study_portal.auth import bearer_token, check_deck_owner
from study_portal.errors import (
    AccessDenied, CardNotFound, InvalidQuality, PersistenceError, ReviewError, StaleCard,
    Unauthenticated,
)
from study_portal.models import Learner
from study_portal.review import submit_review
from study_portal.store import CardStore

log = logging.getLogger(__name__)

Authenticate = Callable[[Optional[str]], Learner]

# Most specific first: StaleCard is a PersistenceError.
ERROR_STATUS = [
    (InvalidQuality, 400),
    (Unauthenticated, 401),
    (AccessDenied, 403),
    (CardNotFound, 404),
    (StaleCard, 409),
    (PersistenceError, 503),
]


def error_response(exc: ReviewError) -> tuple[int, dict]:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            body = {"error": str(exc)}
            if isinstance(exc, PersistenceError):
                body["retryable"] = True
            return status, body
    return 400, {"error": str(exc)}


def _is_true(value) -> bool:
    return str(value).lower() == "true"


def list_flashcards(
    store: CardStore,
    authenticate: Authenticate,
    authorization: Optional[str],
    deck_id=None,
    due=False,
) -> tuple[int, dict]:
    """GET /flashcards?deckId=...&due=true

    *deck_id* may be a single id or a list of ids; without it the learner's
    own decks are listed.
    """
    requested = None
    if deck_id is not None:
        try:
            requested = [int(d) for d in (deck_id if isinstance(deck_id, list) else [deck_id])]
        except (TypeError, ValueError):
            return 400, {"error": f"Invalid deck id {deck_id!r}"}
    try:
        learner = authenticate(bearer_token(authorization))
        if requested is None:
            deck_ids = store.owned_deck_ids(learner.id)
        else:
            deck_ids = requested
            for d in deck_ids:
                check_deck_owner(store, d, learner.id)
        cards = store.get_due_cards(deck_ids, due=_is_true(due))
    except ReviewError as exc:
        return error_response(exc)
    return 200, {"flashcards": [c.to_dict() for c in cards]}


def review_flashcard(
    store: CardStore,
    authenticate: Authenticate,
    authorization: Optional[str],
    card_id,
    payload: Optional[dict],
) -> tuple[int, dict]:
    """POST /flashcards/<id>/review with ``{"quality": 0-5}`` or ``{"result": label}``."""
    if card_id is None or card_id == "":
        return 400, {"error": "Missing flashcard id"}
    try:
        card_id = int(card_id)
    except (TypeError, ValueError):
        return 400, {"error": f"Invalid flashcard id {card_id!r}"}
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        return 400, {"error": "Invalid quality (0..5) or result label required"}
    try:
        learner = authenticate(bearer_token(authorization))
        card = submit_review(
            store,
            card_id,
            quality=payload.get("quality"),
            label=payload.get("result"),
            owner_id=learner.id,
        )
    except ReviewError as exc:
        if isinstance(exc, PersistenceError):
            log.error("Failed to update flashcard %s: %s", card_id, exc)
        return error_response(exc)
    return 200, {"flashcard": card.to_dict()}
