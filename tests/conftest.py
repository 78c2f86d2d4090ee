"""
Test configuration.

Environment is pinned before the app is imported: in-memory backend, a
non-default signing secret and a cheap bcrypt cost so signup tests stay fast.
"""

import os

import pytest

os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["JWT_SECRET"] = "test-secret-key-for-pytest"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"

from fastapi.testclient import TestClient  # noqa: E402

from src.tasks_api.db import SQLiteStore  # noqa: E402
from src.tasks_api.main import app  # noqa: E402
from src.tasks_api.repositories import get_store  # noqa: E402
from src.tasks_api.stores import InMemoryStore  # noqa: E402

from helpers import FakeDataApi, make_dataapi_store  # noqa: E402


@pytest.fixture
def fake_dataapi() -> FakeDataApi:
    return FakeDataApi()


@pytest.fixture(params=["memory", "sqlite", "dataapi"])
def any_store(request, tmp_path, fake_dataapi):
    """Each storage backend in turn, fresh per test."""
    if request.param == "memory":
        store = InMemoryStore()
    elif request.param == "sqlite":
        store = SQLiteStore(str(tmp_path / "todos.db"), timeout=5.0)
    else:
        store = make_dataapi_store(fake_dataapi)
    yield store
    store.close()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def client(store):
    """TestClient whose requests all share one fresh in-memory store."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()

