"""Pytest configuration and fixtures."""

import os
import tempfile

os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_money_weather.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from main import app
from src.api.dependencies import get_pipeline
from src.database.db import build_engine, get_db, init_db, session_factory
from src.database.store import MarketDataStore
from src.services.collection_pipeline import CollectionPipeline
from src.utils.event_store import EventStore
from src.utils.fx_rate_cell import FxRateCell


@pytest.fixture(scope="function")
def test_db():
    """Create a file-based test database."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = build_engine(f"sqlite:///{db_path}")
    init_db(engine)

    yield engine

    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def test_session(test_db):
    """Create a test database session."""
    TestingSessionLocal = session_factory(test_db)
    session = TestingSessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def store(test_session):
    """Market data store over the test database."""
    return MarketDataStore(test_session)


@pytest.fixture
def event_store():
    return EventStore()


@pytest.fixture
def make_pipeline(event_store):
    """Build a pipeline over fake sources with a fresh FX cell."""

    def factory(sources, fx_cell=None):
        return CollectionPipeline(
            sources=sources,
            fx_cell=fx_cell or FxRateCell(),
            event_store=event_store,
            max_workers=4,
        )

    return factory


@pytest.fixture
def test_client(test_session):
    """Create a test client with test database."""

    def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    from fastapi.testclient import TestClient

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()


@pytest.fixture
def override_pipeline():
    """Install a pipeline for the collector endpoint."""

    def install(pipeline):
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return pipeline

    return install
