from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from parking_backend.config import Settings
from parking_backend.dispatcher import Dispatcher
from parking_backend.main import create_app
from parking_backend.store import Store


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'parking.db'}"


@pytest.fixture
def store(db_url):
    store = Store(db_url)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def dispatcher(store):
    dispatcher = Dispatcher(store)
    dispatcher.start()
    yield dispatcher
    dispatcher.stop(timeout=5)


@pytest.fixture
def client(db_url):
    app = create_app(Settings(database_url=db_url, completion_timeout_s=10))
    with TestClient(app) as client:
        yield client
