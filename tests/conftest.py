import pytest

from study_portal.auth import register_learner
from study_portal.db import init_db
from study_portal.store import MemoryCardStore, SQLiteCardStore


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_portal.db")
    return db_path


@pytest.fixture
def learners(tmp_db):
    """Two registered learners, ada (id 1) and bob (id 2)."""
    init_db(tmp_db)
    return register_learner(tmp_db, "ada"), register_learner(tmp_db, "bob")


@pytest.fixture
def sqlite_store(tmp_db, learners):
    return SQLiteCardStore(tmp_db)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_db, learners):
    """Run a test against both card store implementations."""
    if request.param == "memory":
        return MemoryCardStore()
    return SQLiteCardStore(tmp_db)
