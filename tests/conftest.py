from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from safemove.config import Settings
from safemove.db import Base, make_engine
from safemove.dependencies import get_app_settings, get_clock, get_db, get_dispatcher
from safemove.main import app


class FakeClock:

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class RecordingDispatcher:
    """Stands in for the messaging provider; can be told to blow up."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, recipients, body):
        if self.fail:
            raise RuntimeError("provider unavailable")
        self.sent.append((list(recipients), body))
        return True


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'safemove-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 18, 0, 0))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def settings():
    return Settings(
        emergency_contacts=["+911000000001", "+911000000002"],
        admin_alert_contacts=["+911000000009"],
    )


@pytest.fixture
def client(session_factory, clock, dispatcher, settings):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def failing_dispatcher():
    return RecordingDispatcher(fail=True)
