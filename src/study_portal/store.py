"""Card store: persistence of decks, cards and their scheduling state.

Two implementations share the same contract. ``SQLiteCardStore`` is the real
one; ``MemoryCardStore`` keeps everything in dicts so the review flow can run
without a database.
"""
import itertools
import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from study_portal.db import get_connection
from study_portal.errors import CardNotFound, DeckNotFound, PersistenceError, StaleCard
from study_portal.models import Card, Deck, parse_timestamp, to_timestamp, utcnow
from study_portal.sm2 import is_due

log = logging.getLogger(__name__)

SCHEDULING_FIELDS = (
    "repetition_count", "interval_days", "ease", "last_reviewed", "next_review_at",
)


class CardStore:
    """Interface every card store implements."""

    def get_due_cards(
        self,
        deck_ids: Iterable[int],
        due: bool = True,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Card]:
        """Cards in *deck_ids*, only those due at *now* when *due* is set.

        Ordered by next review time, then id. No decks means no cards.
        """
        raise NotImplementedError

    def get_card(self, card_id: int) -> Optional[Card]:
        raise NotImplementedError

    def update_card(
        self, card_id: int, fields: dict, expected_revision: Optional[int] = None
    ) -> Card:
        """Write scheduling *fields* for one card in a single atomic step.

        When *expected_revision* is given and the stored card has moved on,
        raises StaleCard and writes nothing.
        """
        raise NotImplementedError

    def get_deck(self, deck_id: int) -> Optional[Deck]:
        raise NotImplementedError

    def list_decks(self, owner_id: int) -> list[Deck]:
        raise NotImplementedError

    def create_deck(self, owner_id: int, title: str) -> Deck:
        raise NotImplementedError

    def add_card(self, deck_id: int, front: str, back: str) -> Card:
        raise NotImplementedError

    def owned_deck_ids(self, owner_id: int) -> list[int]:
        return [deck.id for deck in self.list_decks(owner_id)]


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(SCHEDULING_FIELDS)
    if unknown:
        raise ValueError(f"Not a scheduling field: {', '.join(sorted(unknown))}")


def _deck_from_row(row) -> Deck:
    return Deck(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        created_at=parse_timestamp(row["created_at"]),
    )


class SQLiteCardStore(CardStore):
    def __init__(self, db_path: str):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path)
        except sqlite3.Error as exc:
            log.error("Cannot open card store %s: %s", self.db_path, exc)
            raise PersistenceError(f"Card store unavailable: {exc}") from exc

    def get_due_cards(self, deck_ids, due=True, now=None, limit=None):
        deck_ids = list(deck_ids)
        if not deck_ids:
            return []
        placeholders = ", ".join("?" for _ in deck_ids)
        sql = f"SELECT * FROM flashcards WHERE deck_id IN ({placeholders})"
        params: list = list(deck_ids)
        if due:
            sql += " AND (next_review_at IS NULL OR next_review_at <= ?)"
            params.append(to_timestamp(now or utcnow()))
        sql += " ORDER BY next_review_at ASC NULLS FIRST, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            log.error("Due-card query failed for decks %s: %s", deck_ids, exc)
            raise PersistenceError(f"Failed to fetch flashcards: {exc}") from exc
        finally:
            conn.close()
        return [Card.from_row(r) for r in rows]

    def get_card(self, card_id):
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to fetch flashcard %s: %s", card_id, exc)
            raise PersistenceError(f"Failed to fetch flashcard: {exc}") from exc
        finally:
            conn.close()
        return Card.from_row(row) if row else None

    def update_card(self, card_id, fields, expected_revision=None):
        _check_fields(fields)
        values = {
            k: to_timestamp(v) if isinstance(v, datetime) else v
            for k, v in fields.items()
        }
        assignments = ", ".join(f"{k} = ?" for k in values)
        sql = f"UPDATE flashcards SET {assignments}, revision = revision + 1 WHERE id = ?"
        params = [*values.values(), card_id]
        if expected_revision is not None:
            sql += " AND revision = ?"
            params.append(expected_revision)
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(sql, params)
                if cursor.rowcount == 0:
                    exists = conn.execute(
                        "SELECT 1 FROM flashcards WHERE id = ?", (card_id,)
                    ).fetchone()
                    if not exists:
                        raise CardNotFound(card_id)
                    raise StaleCard(card_id, expected_revision)
                row = conn.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
        except sqlite3.Error as exc:
            log.error("Failed to update flashcard %s: %s", card_id, exc)
            raise PersistenceError(f"Failed to update flashcard: {exc}") from exc
        finally:
            conn.close()
        return Card.from_row(row)

    def get_deck(self, deck_id):
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM decks WHERE id = ?", (deck_id,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to fetch deck: {exc}") from exc
        finally:
            conn.close()
        return _deck_from_row(row) if row else None

    def list_decks(self, owner_id):
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM decks WHERE owner_id = ? ORDER BY id", (owner_id,)
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list decks: {exc}") from exc
        finally:
            conn.close()
        return [_deck_from_row(r) for r in rows]

    def create_deck(self, owner_id, title):
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "INSERT INTO decks (owner_id, title, created_at) VALUES (?, ?, ?)",
                    (owner_id, title, to_timestamp(utcnow())),
                )
                row = conn.execute(
                    "SELECT * FROM decks WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to create deck: {exc}") from exc
        finally:
            conn.close()
        log.info("Created deck %d (%s) for learner %d", row["id"], title, owner_id)
        return _deck_from_row(row)

    def add_card(self, deck_id, front, back):
        created = to_timestamp(utcnow())
        conn = self._connect()
        try:
            with conn:
                if not conn.execute("SELECT 1 FROM decks WHERE id = ?", (deck_id,)).fetchone():
                    raise DeckNotFound(deck_id)
                cursor = conn.execute(
                    """INSERT INTO flashcards (deck_id, front, back, next_review_at, created_at)
                    VALUES (?, ?, ?, ?, ?)""",
                    (deck_id, front, back, created, created),
                )
                row = conn.execute(
                    "SELECT * FROM flashcards WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to add flashcard: {exc}") from exc
        finally:
            conn.close()
        return Card.from_row(row)


class MemoryCardStore(CardStore):
    """Dict-backed store with the same semantics as the SQLite one."""

    def __init__(self):
        self._cards: dict[int, Card] = {}
        self._decks: dict[int, Deck] = {}
        self._card_ids = itertools.count(1)
        self._deck_ids = itertools.count(1)
        self._lock = threading.Lock()

    def get_due_cards(self, deck_ids, due=True, now=None, limit=None):
        wanted = set(deck_ids)
        if not wanted:
            return []
        now = now or utcnow()
        with self._lock:
            cards = [
                replace(c) for c in self._cards.values()
                if c.deck_id in wanted and (not due or is_due(c.next_review_at, now))
            ]
        cards.sort(key=lambda c: (c.next_review_at is not None, c.next_review_at or now, c.id))
        return cards[:limit] if limit is not None else cards

    def get_card(self, card_id):
        with self._lock:
            card = self._cards.get(card_id)
            return replace(card) if card else None

    def update_card(self, card_id, fields, expected_revision=None):
        _check_fields(fields)
        with self._lock:
            card = self._cards.get(card_id)
            if card is None:
                raise CardNotFound(card_id)
            if expected_revision is not None and card.revision != expected_revision:
                raise StaleCard(card_id, expected_revision)
            updated = replace(card, revision=card.revision + 1, **fields)
            self._cards[card_id] = updated
            return replace(updated)

    def get_deck(self, deck_id):
        return self._decks.get(deck_id)

    def list_decks(self, owner_id):
        return [d for d in self._decks.values() if d.owner_id == owner_id]

    def create_deck(self, owner_id, title):
        with self._lock:
            deck = Deck(id=next(self._deck_ids), owner_id=owner_id, title=title,
                        created_at=utcnow())
            self._decks[deck.id] = deck
        return deck

    def add_card(self, deck_id, front, back):
        if deck_id not in self._decks:
            raise DeckNotFound(deck_id)
        created = utcnow().replace(microsecond=0)
        with self._lock:
            card = Card(id=next(self._card_ids), deck_id=deck_id, front=front, back=back,
                        next_review_at=created, created_at=created)
            self._cards[card.id] = card
        return replace(card)
