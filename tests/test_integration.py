# tests/test_integration.py
"""End-to-end test of the review workflow against SQLite."""
from datetime import timedelta

from study_portal.api import list_flashcards, review_flashcard
from study_portal.auth import authenticator
from study_portal.importer import import_deck
from study_portal.models import utcnow
from study_portal.review import ReviewSession, SessionState


def test_full_review_workflow(sqlite_store, learners, tmp_db, tmp_path):
    ada, _ = learners
    source = tmp_path / "biology.txt"
    source.write_text("cell\tbasic unit of life\nDNA\tgenetic material\ngene\tunit of heredity\n")
    result = import_deck(sqlite_store, ada.id, str(source))
    assert result["cards"] == 3

    # Review the whole deck in one session
    session = ReviewSession(sqlite_store, ada.id)
    queue = session.start()
    assert [c.front for c in queue] == ["cell", "DNA", "gene"]
    for quality in (5, 4, 1):
        session.reveal()
        session.submit(quality)
    assert session.state == SessionState.IDLE_EMPTY

    # Nothing is due right away: even the lapsed card waits a day
    assert ReviewSession(sqlite_store, ada.id).start() == []

    # Tomorrow everything is due again
    tomorrow = utcnow() + timedelta(days=1, minutes=1)
    session = ReviewSession(sqlite_store, ada.id, clock=lambda: tomorrow)
    assert len(session.start()) == 3

    # Same card through the request handlers
    auth = authenticator(tmp_db)
    header = f"Bearer {ada.token}"
    card_id = queue[0].id
    status, body = review_flashcard(sqlite_store, auth, header, card_id, {"result": "good"})
    assert status == 200
    assert body["flashcard"]["repetition_count"] == 2
    assert body["flashcard"]["interval_days"] == 6
    assert body["flashcard"]["ease"] == 2.6

    status, body = list_flashcards(sqlite_store, auth, header, due="true")
    assert status == 200
    assert body["flashcards"] == []
    status, body = list_flashcards(sqlite_store, auth, header)
    assert len(body["flashcards"]) == 3
