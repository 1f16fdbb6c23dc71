from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from studyhub.config import AppConfig
from studyhub.main import create_app
from studyhub.metrics import MetricsRegistry
from studyhub.storage import InMemoryEntityStore, SqliteEntityStore


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock, tmp_path):
    """Every store implementation, sharing the fixed clock."""

    if request.param == "memory":
        yield InMemoryEntityStore(clock=clock)
        return
    sqlite_store = SqliteEntityStore(tmp_path / "studyhub.db", clock=clock)
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def client(clock, metrics):
    app = create_app(
        config=AppConfig(log_level="WARNING"),
        store=InMemoryEntityStore(clock=clock),
        clock=clock,
        metrics=metrics,
    )
    with TestClient(app) as test_client:
        yield test_client
