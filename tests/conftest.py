"""
Pytest configuration and shared fixtures for state-upgrader tests.
"""

import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from state_upgrader.database import DatabaseManager, KeyValueStateStore, ScopeProvider
from state_upgrader.migrations import Migration, MigrationContext


class RecordingMigration(Migration):
    """Migration that appends its name to a shared journal."""

    def __init__(self, label: str, journal: list[str]):
        super().__init__(f"record {label}")
        self.label = label
        self.journal = journal

    @property
    def name(self) -> str:
        return self.label

    def migrate(self, context: MigrationContext) -> None:
        self.journal.append(self.label)


class FailingMigration(RecordingMigration):
    """Migration that records itself and then raises."""

    def migrate(self, context: MigrationContext) -> None:
        self.journal.append(self.label)
        raise RuntimeError(f"{self.label} failed")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep STATE_UPGRADER_* variables from leaking into tests."""
    for name in list(os.environ):
        if name.startswith("STATE_UPGRADER_"):
            monkeypatch.delenv(name)


@pytest.fixture
def journal() -> list[str]:
    """Order in which migrations ran."""
    return []


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir) / "state.db"


@pytest.fixture
def db_manager(temp_db_path) -> Generator[DatabaseManager, None, None]:
    """Database manager on a temporary SQLite file with tables created."""
    manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
    manager.create_tables()

    yield manager

    manager.close()


@pytest.fixture
def scope_provider(db_manager) -> ScopeProvider:
    return ScopeProvider(db_manager)


@pytest.fixture
def state_store(scope_provider) -> KeyValueStateStore:
    return KeyValueStateStore(scope_provider)


@pytest.fixture
def make_migration(journal):
    """Factory for migrations that record into ``journal``."""

    def factory(label: str, fail: bool = False) -> RecordingMigration:
        cls = FailingMigration if fail else RecordingMigration
        return cls(label, journal)

    return factory
