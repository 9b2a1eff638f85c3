"""Shared test fixtures."""

from pathlib import Path

import pytest

from lunar.bot.session import SessionRegistry
from lunar.db import DocumentStore
from lunar.memory.store import MemoryStore
from lunar.people.store import PeopleStore


@pytest.fixture
def db(tmp_path: Path) -> DocumentStore:
    """Document store backed by a temporary SQLite file."""
    return DocumentStore(db_path=tmp_path / "test.db")


@pytest.fixture
def people(db: DocumentStore) -> PeopleStore:
    return PeopleStore(db)


@pytest.fixture
def memory(db: DocumentStore, people: PeopleStore) -> MemoryStore:
    return MemoryStore(db, people)


@pytest.fixture
def sessions() -> SessionRegistry:
    """Fresh conversation registry for each test."""
    return SessionRegistry(max_history=50)
