"""Import flashcards into a deck from text, CSV, JSON or YAML files."""
import csv
import json
import logging
from pathlib import Path
from typing import Optional

from study_portal.store import CardStore

log = logging.getLogger(__name__)


def _pairs_from_records(records) -> list[tuple[str, str]]:
    if isinstance(records, dict):
        records = records.get("cards", [])
    pairs = []
    for rec in records:
        if isinstance(rec, dict):
            front, back = rec.get("front"), rec.get("back")
        else:
            front, back = rec[0], rec[1]
        if front and back:
            pairs.append((str(front).strip(), str(back).strip()))
    return pairs


def read_card_file(file_path: str) -> list[tuple[str, str]]:
    """Return (front, back) pairs found in *file_path*.

    Text files hold one card per line, front and back separated by a tab
    (or `` :: ``). CSV files need ``front`` and ``back`` columns.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".csv":
        with path.open(newline="", encoding="utf-8-sig") as fh:
            return _pairs_from_records(list(csv.DictReader(fh)))
    elif suffix == ".json":
        return _pairs_from_records(json.loads(path.read_text(encoding="utf-8")))
    elif suffix in (".yaml", ".yml"):
        import yaml
        return _pairs_from_records(yaml.safe_load(path.read_text(encoding="utf-8")) or [])

    pairs = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        sep = "\t" if "\t" in line else " :: "
        front, _, back = line.partition(sep)
        if front.strip() and back.strip():
            pairs.append((front.strip(), back.strip()))
    return pairs


def import_deck(
    store: CardStore, owner_id: int, file_path: str, title: Optional[str] = None
) -> dict:
    """Create a deck for *owner_id* holding every card in *file_path*."""
    pairs = read_card_file(file_path)
    deck = store.create_deck(owner_id, title or Path(file_path).stem)
    for front, back in pairs:
        store.add_card(deck.id, front, back)
    log.info("Imported %d cards from %s into deck %d", len(pairs), file_path, deck.id)
    return {"deck_id": deck.id, "title": deck.title, "cards": len(pairs)}
