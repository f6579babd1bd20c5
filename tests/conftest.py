"""
Test configuration and fixtures.
This centralizes all test setup, making individual tests clean.

Each test gets its own file-based SQLite database under tmp_path (the
database sequence strategy opens its own sessions, so an in-memory
database would not be shared), an in-memory cache and queue, and a
SQLite click storage. The click worker is not embedded; tests drain the
queue explicitly with ``ClickWorker.run_once``.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from shortlink_app.cache.strategies import InMemoryCache
from shortlink_app.config import settings
from shortlink_app.database.connection import Base, build_engine, get_db
from shortlink_app.dependencies import (
    get_cache,
    get_classifier,
    get_click_storage,
    get_queue,
    get_sequence,
)
from shortlink_app.hit_processor.click_worker import ClickWorker
from shortlink_app.models import User
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.security import create_access_token
from shortlink_app.services.click_classifier import ClickClassifier
from shortlink_app.services.entitlements import PlanTier
from shortlink_app.services.geo import NullGeoLookup
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.sequence_strategies import DatabaseSequenceStrategy
from shortlink_app.services.user_service import UserService
from shortlink_app.storage.strategies import SQLiteClickStorage


@pytest.fixture(scope="function")
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """
    Create a fresh database session for each test.
    This ensures tests are isolated and don't affect each other.
    """
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sequence(session_factory):
    return DatabaseSequenceStrategy(session_factory, floor=settings.sequence_floor)


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def queue():
    return InMemoryQueue()


@pytest.fixture
def click_storage(tmp_path):
    return SQLiteClickStorage(db_path=str(tmp_path / "analytics.db"))


@pytest.fixture
def classifier():
    return ClickClassifier(NullGeoLookup())


@pytest.fixture
def worker(queue, click_storage):
    return ClickWorker(queue=queue, storage=click_storage, poll_interval=0)


@pytest.fixture
def link_service(db_session, cache, sequence):
    return LinkService(db_session, cache=cache, sequence=sequence)


@pytest.fixture
def user_service(db_session):
    return UserService(db_session)


@pytest.fixture
def make_user(db_session):
    """Factory fixture: ``make_user(PlanTier.PRO, credits=3)``"""
    created = []

    def _make_user(plan: PlanTier = PlanTier.FREE, credits: int = 10) -> User:
        user = User(
            email=f"user{len(created) + 1}@example.com",
            name=f"User {len(created) + 1}",
            plan_tier=plan.value,
            available_credits=credits,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        created.append(user)
        return user

    return _make_user


@pytest.fixture
def free_user(make_user):
    return make_user(PlanTier.FREE)


@pytest.fixture
def pro_user(make_user):
    return make_user(PlanTier.PRO)


@pytest.fixture
def enterprise_user(make_user):
    return make_user(PlanTier.ENTERPRISE, credits=0)


@pytest.fixture
def auth_headers():
    """Bearer header for a user, signed with the configured secret"""
    def _auth_headers(user: User) -> dict:
        token = create_access_token(user.id, PlanTier(user.plan_tier), email=user.email)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture(scope="function")
def client(monkeypatch, db_session, cache, queue, click_storage, sequence, classifier):
    """
    Create a test client with infrastructure dependencies overridden.
    This is the main fixture that tests will use.
    """
    monkeypatch.setattr(settings, "embedded_click_worker", False)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_queue] = lambda: queue
    app.dependency_overrides[get_click_storage] = lambda: click_storage
    app.dependency_overrides[get_sequence] = lambda: sequence
    app.dependency_overrides[get_classifier] = lambda: classifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
