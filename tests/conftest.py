"""Shared fixtures for ATLAS tests."""

import os

# Settings are read once and cached; pin them before anything imports atlas.
os.environ.setdefault("ATLAS_STORAGE", "memory")
os.environ.setdefault("ATLAS_TIMEZONE", "America/New_York")

import pytest
from fastapi.testclient import TestClient

from atlas.main import create_app
from atlas.memory_store import InMemoryStorage


# 2024-06-12 is a Wednesday (weekday 3, Sunday=0)
TODAY = "2024-06-12"


@pytest.fixture
def today() -> str:
    return TODAY


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def client(storage):
    """API client backed by the fixture storage."""
    with TestClient(create_app(storage)) as test_client:
        yield test_client
