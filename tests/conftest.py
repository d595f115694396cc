"""Pytest fixtures and configuration for calavail tests."""

import pytest
from datetime import datetime, time
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from calavail.database.database import Base
from calavail.database import models  # noqa: F401  (registers tables on Base.metadata)
from calavail.database.models import UserDB
from calavail.database.identity_repository import IdentityAdapter
from calavail.database.schedule_repository import ScheduleRepository
from calavail.availability.manager import ScheduleManager
from calavail.models.schedule import AvailabilityBlock


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_USER_TIME_ZONE = "America/New_York"


def _enable_sqlite_foreign_keys(engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _seed_users(session: Session, *user_ids: str) -> None:
    now = datetime.utcnow()
    for user_id in user_ids:
        session.add(
            UserDB(
                id=user_id,
                email=f"{user_id}@example.com",
                name=f"User {user_id}",
                time_zone=TEST_USER_TIME_ZONE,
                created_at=now,
                updated_at=now,
            )
        )
    session.commit()


@pytest.fixture
def test_user_id():
    """Owner of the schedules under test."""
    return "test-user-123"


@pytest.fixture
def other_user_id():
    """A second owner, for ownership-isolation tests."""
    return "other-user-456"


@pytest.fixture(scope="function")
def db_session(test_user_id, other_user_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test,
    seeded with two users.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    _enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    _seed_users(session, test_user_id, other_user_id)

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path, test_user_id, other_user_id):
    """Session factory over a file-backed SQLite DB, for tests that need two independent sessions."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'calavail-test.db'}",
        connect_args={"check_same_thread": False},
    )
    _enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    seed = factory()
    _seed_users(seed, test_user_id, other_user_id)
    seed.close()
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def schedule_repository(db_session: Session):
    return ScheduleRepository(db_session)


@pytest.fixture
def schedule_manager(db_session: Session):
    return ScheduleManager(db_session)


@pytest.fixture
def identity_adapter(db_session: Session):
    return IdentityAdapter(db_session)


@pytest.fixture
def weekday_block():
    """Monday-Friday 09:00-17:00."""
    return AvailabilityBlock(days=[1, 2, 3, 4, 5], start_time=time(9, 0), end_time=time(17, 0))


@pytest.fixture
def weekend_block():
    """Saturday-Sunday 10:00-14:00."""
    return AvailabilityBlock(days=[0, 6], start_time=time(10, 0), end_time=time(14, 0))


@pytest.fixture
def test_user(db_session, test_user_id):
    return db_session.query(UserDB).filter(UserDB.id == test_user_id).one().to_pydantic()


@pytest.fixture
def api_client(db_session: Session, monkeypatch):
    """FastAPI test client with the database dependency overridden (real authentication)."""
    from calavail.api.app import app
    from calavail.database.database import get_db

    monkeypatch.setenv("INIT_DB_ON_STARTUP", "false")

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(api_client, test_user):
    """Test client authenticated as the test user."""
    from calavail.api.app import app
    from calavail.auth.dependencies import get_current_user

    app.dependency_overrides[get_current_user] = lambda: test_user
    yield api_client
    app.dependency_overrides.pop(get_current_user, None)
