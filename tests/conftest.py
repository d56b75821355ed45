"""Shared test fixtures."""

from pathlib import Path

import pytest

from novana.chat.store import ConversationStore
from novana.people.store import PeopleStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("novana.config.settings.turso_database_url", "")


@pytest.fixture
def conversations(tmp_path: Path, _no_turso: None) -> ConversationStore:
    """A ConversationStore backed by a temp database."""
    return ConversationStore(db_path=tmp_path / "test.db")


@pytest.fixture
def people(tmp_path: Path, _no_turso: None) -> PeopleStore:
    """A PeopleStore sharing the temp database."""
    return PeopleStore(db_path=tmp_path / "test.db")
