from datetime import timedelta

import pytest

from study_portal.api import list_flashcards, review_flashcard
from study_portal.auth import authenticator, register_learner
from study_portal.errors import PersistenceError
from study_portal.models import utcnow
from study_portal.store import SQLiteCardStore


@pytest.fixture
def portal(sqlite_store, learners, tmp_db):
    ada, bob = learners
    deck = sqlite_store.create_deck(ada.id, "Biology")
    cards = [sqlite_store.add_card(deck.id, f"q{i}", f"a{i}") for i in range(2)]
    bob_deck = sqlite_store.create_deck(bob.id, "History")
    bob_card = sqlite_store.add_card(bob_deck.id, "1066", "Hastings")
    return {
        "store": sqlite_store,
        "auth": authenticator(tmp_db),
        "ada": ada,
        "bob": bob,
        "deck": deck,
        "cards": cards,
        "bob_deck": bob_deck,
        "bob_card": bob_card,
    }


def _header(token):
    return None if token is None else f"Bearer {token}"


def _review(portal, card_id, payload, token=None):
    token = portal["ada"].token if token is None else token
    return review_flashcard(portal["store"], portal["auth"], _header(token), card_id, payload)


def _list(portal, **kwargs):
    token = kwargs.pop("token", portal["ada"].token)
    return list_flashcards(portal["store"], portal["auth"], _header(token), **kwargs)



def test_list_own_flashcards(portal):
    status, body = _list(portal)
    assert status == 200
    assert [c["front"] for c in body["flashcards"]] == ["q0", "q1"]


def test_list_due_only(portal):
    future = utcnow() + timedelta(hours=1)
    portal["store"].update_card(portal["cards"][0].id, {"next_review_at": future})
    status, body = _list(portal, due="true")
    assert status == 200
    assert [c["front"] for c in body["flashcards"]] == ["q1"]
    status, body = _list(portal, due="false")
    assert len(body["flashcards"]) == 2


def test_list_explicit_deck(portal):
    status, body = _list(portal, deck_id=str(portal["deck"].id))
    assert status == 200
    assert len(body["flashcards"]) == 2


def test_list_someone_elses_deck(portal):
    status, body = _list(portal, deck_id=[portal["bob_deck"].id])
    assert status == 403


def test_list_with_bad_deck_id(portal):
    status, _ = _list(portal, deck_id="abc")
    assert status == 400


def test_list_without_decks_is_empty(portal, tmp_db):
    newcomer = register_learner(tmp_db, "cy")
    status, body = _list(portal, token=newcomer.token)
    assert (status, body) == (200, {"flashcards": []})


@pytest.mark.parametrize("token", [None, "", "forged"])
def test_list_requires_valid_token(portal, token):
    status, body = _list(portal, token=token)
    assert status == 401
    assert "error" in body


def test_review_with_quality(portal):
    card = portal["cards"][0]
    status, body = _review(portal, str(card.id), {"quality": 5})
    assert status == 200
    updated = body["flashcard"]
    assert updated["repetition_count"] == 1
    assert updated["interval_days"] == 1
    assert updated["ease"] == 2.6
    assert updated["last_reviewed"] is not None
    assert updated["next_review_at"] > updated["last_reviewed"]


@pytest.mark.parametrize("label,ease", [("again", 2.5), ("hard", 2.5), ("good", 2.5), ("easy", 2.6)])
def test_review_with_result_label(portal, label, ease):
    status, body = _review(portal, portal["cards"][0].id, {"result": label})
    assert status == 200
    assert body["flashcard"]["ease"] == ease


@pytest.mark.parametrize("payload", [{"quality": 6}, {"quality": -1}, {"result": "meh"}, {}, None])
def test_review_invalid_quality(portal, payload):
    card = portal["cards"][0]
    status, body = _review(portal, card.id, payload)
    assert status == 400
    assert portal["store"].get_card(card.id).revision == card.revision


def test_review_unknown_card(portal):
    status, _ = _review(portal, 999, {"quality": 4})
    assert status == 404


def test_review_missing_or_bad_id(portal):
    assert _review(portal, None, {"quality": 4})[0] == 400
    assert _review(portal, "", {"quality": 4})[0] == 400
    assert _review(portal, "x1", {"quality": 4})[0] == 400


def test_review_requires_token(portal):
    status, _ = _review(portal, portal["cards"][0].id, {"quality": 4}, token="")
    assert status == 401


def test_review_card_in_someone_elses_deck(portal):
    card = portal["bob_card"]
    status, _ = _review(portal, card.id, {"quality": 4})
    assert status == 403
    assert portal["store"].get_card(card.id).revision == card.revision


def test_review_store_failure_is_retryable(portal, monkeypatch):
    def broken(*args, **kwargs):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(portal["store"], "update_card", broken)
    status, body = _review(portal, portal["cards"][0].id, {"quality": 4})
    assert status == 503
    assert body["retryable"] is True


@pytest.mark.parametrize("payload", [["quality", 4], "good", 4])
def test_review_payload_must_be_an_object(portal, payload):
    card = portal["cards"][0]
    status, body = _review(portal, card.id, payload)
    assert status == 400
    assert "error" in body
    assert portal["store"].get_card(card.id).revision == card.revision


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer "])
def test_authorization_header_must_be_bearer(portal, header):
    status, _ = review_flashcard(
        portal["store"], portal["auth"], header, portal["cards"][0].id, {"quality": 4},
    )
    assert status == 401
    status, _ = list_flashcards(portal["store"], portal["auth"], header)
    assert status == 401


def test_unavailable_learner_store_is_503(tmp_path):
    missing = str(tmp_path / "never_initialized.db")
    store, auth = SQLiteCardStore(missing), authenticator(missing)
    status, body = review_flashcard(store, auth, "Bearer tok", 1, {"quality": 4})
    assert status == 503
    assert body["retryable"] is True
    status, _ = list_flashcards(store, auth, "Bearer tok")
    assert status == 503
