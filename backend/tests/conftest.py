"""
Test fixtures for Commute Monitor backend tests.
"""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from commute_monitor.config import get_settings
from commute_monitor.database import Base, get_db
from commute_monitor.main import app
from commute_monitor.models import Route, MonitorSettings
from commute_monitor.scheduler import RouteScheduler, get_route_scheduler
from commute_monitor.services.push import NtfyPublisher
from commute_monitor.services.travel_time import TravelTimeResult


# Create test database engine (SQLite in-memory, one shared connection)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign key constraints for SQLite
@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeProvider:
    """
    Stand-in for DistanceMatrixClient. Returns the queued durations in order;
    None in the queue (or an empty queue) simulates a provider failure.
    """

    def __init__(self, durations=()):
        self.durations = list(durations)
        self.calls = []

    async def fetch_travel_time(self, source, destination, api_key):
        self.calls.append((source, destination, api_key))
        if not self.durations:
            return None
        minutes = self.durations.pop(0)
        if minutes is None:
            return None
        return TravelTimeResult(
            duration_minutes=minutes,
            duration_text=f"{minutes} mins",
            distance_text="12.3 km",
        )

    async def close(self):
        pass


@pytest.fixture(autouse=True)
def no_env_api_key(monkeypatch):
    """Keep a developer's GOOGLE_MAPS_API_KEY out of the tests."""
    monkeypatch.setattr(get_settings(), "google_maps_api_key", "")


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fake_provider():
    """The FakeProvider class, for tests that queue their own durations."""
    return FakeProvider


@pytest.fixture
def publisher():
    return NtfyPublisher(ntfy_url="")


@pytest.fixture
def monitor_settings(db_session):
    """Settings row with a stored API key and notify-on-everything."""
    settings = MonitorSettings.get_or_create(db_session)
    settings.api_key = "stored-key-1234"
    settings.enable_notifications = True
    settings.notification_type = "all"
    db_session.commit()
    return settings


@pytest.fixture
def make_route(db_session):
    def _make_route(**overrides):
        fields = {
            "name": "Home to Office via the Northern Motorway and Harbour Bridge",
            "source": "1 Queen Street, Auckland",
            "destination": "100 Lake Road, Takapuna",
            "interval": 5,
            "is_active": True,
        }
        fields.update(overrides)
        route = Route(**fields)
        db_session.add(route)
        db_session.commit()
        db_session.refresh(route)
        return route

    return _make_route


@pytest.fixture
def route_scheduler(db_session, provider, publisher):
    """A RouteScheduler that is never started, so jobs stay pending and never fire."""
    return RouteScheduler(
        session_factory=TestSessionLocal,
        provider=provider,
        publisher=publisher,
        timezone="UTC",
    )


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db, route_scheduler):
    """
    Create an async test client with the database and scheduler dependencies overridden.
    """
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_route_scheduler] = lambda: route_scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()
