"""Learner identity: bearer tokens resolved against the learners table."""
import logging
import secrets
import sqlite3
from typing import Callable, Optional

from study_portal.db import get_connection
from study_portal.errors import AccessDenied, PersistenceError, Unauthenticated
from study_portal.models import Learner, to_timestamp, utcnow
from study_portal.store import CardStore

log = logging.getLogger(__name__)


def _learner_from_row(row) -> Learner:
    return Learner(id=row["id"], name=row["name"], token=row["token"])


def register_learner(db_path: str, name: str) -> Learner:
    """Create a learner with a fresh token, or return the existing one by name."""
    try:
        conn = get_connection(db_path)
        try:
            row = conn.execute("SELECT * FROM learners WHERE name = ?", (name,)).fetchone()
            if row is None:
                with conn:
                    conn.execute(
                        "INSERT INTO learners (name, token, created_at) VALUES (?, ?, ?)",
                        (name, secrets.token_urlsafe(24), to_timestamp(utcnow())),
                    )
                row = conn.execute("SELECT * FROM learners WHERE name = ?", (name,)).fetchone()
                log.info("Registered learner %s", name)
        finally:
            conn.close()
    except sqlite3.Error as exc:
        log.error("Failed to register learner %s: %s", name, exc)
        raise PersistenceError(f"Learner store unavailable: {exc}") from exc
    return _learner_from_row(row)


def authenticate(db_path: str, token: Optional[str]) -> Learner:
    if not token:
        raise Unauthenticated("No token provided")
    try:
        conn = get_connection(db_path)
        try:
            row = conn.execute("SELECT * FROM learners WHERE token = ?", (token,)).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        log.error("Token lookup failed: %s", exc)
        raise PersistenceError(f"Learner store unavailable: {exc}") from exc
    if row is None:
        raise Unauthenticated("Invalid token")
    return _learner_from_row(row)


def authenticator(db_path: str) -> Callable[[Optional[str]], Learner]:
    """Bind :func:`authenticate` to a database for the request handlers."""
    def _authenticate(token):
        return authenticate(db_path, token)
    return _authenticate


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def check_deck_owner(store: CardStore, deck_id: int, owner_id: int) -> None:
    deck = store.get_deck(deck_id)
    if deck is None or deck.owner_id != owner_id:
        raise AccessDenied(f"Deck {deck_id} is not owned by learner {owner_id}")
