"""Common test fixtures for bear-query."""

import pytest

from bear_query.config import BearQueryConfig
from bear_query.db import BearDb
from bear_query.observability import metrics
from tests.bear_fixtures import create_bear_database, create_sample_database


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep a developer's BEAR_QUERY_* variables out of the tests."""
    for name in (
        "BEAR_QUERY_DATABASE_PATH",
        "BEAR_QUERY_BUSY_TIMEOUT_MS",
        "BEAR_QUERY_JUNCTION_TABLE",
    ):
        monkeypatch.delenv(name, raising=False)
    metrics.reset()


@pytest.fixture
def sample_db_path(tmp_path):
    """A Bear-shaped database file with the sample notes, tags and links."""
    return create_sample_database(tmp_path / "database.sqlite")


@pytest.fixture
def bear_db(sample_db_path):
    """A BearDb handle over the sample database."""
    db = BearDb(sample_db_path)
    yield db
    db.close()


@pytest.fixture
def hello_db(tmp_path):
    """One note ("Hello"/"World", modified 100 s after the epoch) tagged "work"."""
    path = create_bear_database(
        tmp_path / "hello.sqlite",
        notes=[(1, "hello-uuid", "Hello", "World", 100, 100, 0, 0, 0)],
        tags=[(7, "work", 100)],
        note_tags=[(1, 7)],
    )
    db = BearDb(path)
    yield db
    db.close()


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a (not yet created) database under tmp_path."""
    return BearQueryConfig(database_path=tmp_path / "database.sqlite")
