import pytest
from fastapi.testclient import TestClient

from soundmap import models
from soundmap.backend import SoundMapBackend
from soundmap.cache import OfflineCache
from soundmap.database import create_database_engine, create_session_factory, create_tables
from soundmap.main import app, get_backend, request_counts
from soundmap.retry import RetryPolicy

USER_LAT = 52.5200
USER_LNG = 13.4050


@pytest.fixture
def engine():
    engine = create_database_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def cache():
    return OfflineCache()


@pytest.fixture
def no_sleep_policy():
    return RetryPolicy(max_attempts=3, base_delay=0.01, sleep=lambda seconds: None)


@pytest.fixture
def backend(session_factory, no_sleep_policy, cache, engine):
    return SoundMapBackend(session_factory, retry_policy=no_sleep_policy, cache=cache, engine=engine)


@pytest.fixture
def add_clip(session_factory):
    """Insert a clip row directly, bypassing upload validation."""
    def _add(**fields):
        data = {"title": "Clip", "lat": USER_LAT, "lng": USER_LNG, "radius": 50,
                "url": "https://example.com/clip.webm"}
        data.update(fields)
        with session_factory() as db:
            clip = models.Clip(**data)
            db.add(clip)
            db.commit()
            return clip.id
    return _add


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    request_counts.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
