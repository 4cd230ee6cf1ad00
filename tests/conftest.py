"""Root conftest - shared test configuration and a file-backed SQLite manager.

Invariants:
    - Every test using sqlite_manager gets a fresh database file with an accounts table
    - The engine is disposed after the test

Design Decisions:
    - File database over :memory:: concurrent fold siblings check out separate
      pooled connections, and each :memory: connection would see its own database
"""

import os

import pytest

# Ensure tests never reach a real database by accident
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)

from deferq.infrastructure.database import DatabaseManager  # noqa: E402

CREATE_ACCOUNTS = (
    "CREATE TABLE accounts ("
    "id INTEGER PRIMARY KEY, email TEXT NOT NULL UNIQUE, display_name TEXT)"
)


@pytest.fixture
async def sqlite_manager(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'deferq.db'}")
    await manager.handle.execute(CREATE_ACCOUNTS)
    yield manager
    await manager.dispose()
