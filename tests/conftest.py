import pytest

from prayer_badge.core.db import close_db, init_db
from prayer_badge.core.store import RecordStore


@pytest.fixture
def db(tmp_path):
    init_db(db_url=f"sqlite:///{tmp_path / 'records.db'}")
    yield
    close_db()


@pytest.fixture
def store(db):
    return RecordStore()
