"""Core test fixtures - fake database and container."""

import pytest

from tests.core.fake_database import FakeDatabase, make_container


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def container(fake_db):
    return make_container(fake_db)
