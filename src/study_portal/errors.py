"""Exceptions raised across the review flow."""


class ReviewError(Exception):
    """Base class for every error the review flow raises."""


class InvalidQuality(ReviewError):
    """Quality outside 0-5 and no usable result label."""


class CardNotFound(ReviewError):
    def __init__(self, card_id):
        super().__init__(f"Flashcard {card_id} not found")
        self.card_id = card_id


class DeckNotFound(ReviewError):
    def __init__(self, deck_id):
        super().__init__(f"Deck {deck_id} not found")
        self.deck_id = deck_id


class PersistenceError(ReviewError):
    """The card store could not complete a read or write. Safe to retry."""

    retryable = True


class StaleCard(PersistenceError):
    """The card changed between read and write (revision mismatch)."""

    def __init__(self, card_id, expected_revision):
        super().__init__(
            f"Flashcard {card_id} was modified concurrently "
            f"(expected revision {expected_revision})"
        )
        self.card_id = card_id
        self.expected_revision = expected_revision


class AuthError(ReviewError):
    pass


class Unauthenticated(AuthError):
    pass


class AccessDenied(AuthError):
    pass


class ReviewInProgress(ReviewError):
    """A submission for this card is already in flight."""

    def __init__(self, card_id):
        super().__init__(f"Review for flashcard {card_id} already in progress")
        self.card_id = card_id


class InvalidTransition(ReviewError):
    """Session operation not allowed in its current state."""
