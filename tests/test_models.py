from datetime import datetime, timezone

from study_portal.models import Card, parse_timestamp, to_timestamp


def _row(**overrides):
    row = {
        "id": 1, "deck_id": 2, "front": "f", "back": "b",
        "repetition_count": 3, "interval_days": 6, "ease": 2.6,
        "next_review_at": "2026-03-07T09:00:00+00:00",
        "last_reviewed": "2026-03-01T09:00:00+00:00",
        "revision": 4, "created_at": None,
    }
    row.update(overrides)
    return row


def test_card_from_row():
    card = Card.from_row(_row())
    assert card.repetition_count == 3
    assert card.interval_days == 6
    assert card.ease == 2.6
    assert card.next_review_at == datetime(2026, 3, 7, 9, tzinfo=timezone.utc)
    assert card.revision == 4


def test_card_from_row_fills_unset_scheduling_fields():
    card = Card.from_row(_row(repetition_count=None, interval_days=None, ease=None,
                              next_review_at=None, revision=None))
    assert card.repetition_count == 0
    assert card.interval_days == 1
    assert card.ease == 2.5
    assert card.next_review_at is None
    assert card.revision == 0


def test_card_from_row_clamps_legacy_values():
    card = Card.from_row(_row(interval_days=0, ease=1.1))
    assert card.interval_days == 1
    assert card.ease == 1.3


def test_card_to_dict_serializes_timestamps():
    data = Card.from_row(_row()).to_dict()
    assert data["next_review_at"] == "2026-03-07T09:00:00+00:00"
    assert data["created_at"] is None
    assert data["front"] == "f"


def test_naive_timestamps_are_read_as_utc():
    assert parse_timestamp("2026-03-01T09:00:00") == datetime(2026, 3, 1, 9, tzinfo=timezone.utc)
    assert parse_timestamp("") is None


def test_to_timestamp_normalizes_to_utc():
    moment = datetime.fromisoformat("2026-03-01T10:00:00.123456+01:00")
    assert to_timestamp(moment) == "2026-03-01T09:00:00+00:00"
