from __future__ import annotations

import datetime as dt
from threading import RLock
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tasktrack import models
from tasktrack.main import app, get_tracking
from tasktrack.services import TimeTracking


class FakeClock:
    """Deterministic clock; tests move it with ``advance``."""

    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta: float) -> dt.datetime:
        self.now = self.now + dt.timedelta(**delta)
        return self.now


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    models.Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    SessionTesting = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2024, 1, 15, 9, 0, tzinfo=dt.timezone.utc))


@pytest.fixture()
def tracking(session: Session, clock: FakeClock) -> TimeTracking:
    return TimeTracking(session, clock=clock, lock=RLock())


@pytest.fixture()
def make_task(tracking: TimeTracking):
    def _make(title: str = "Homepage mockups", **fields):
        return tracking.tasks.create_task(title, **fields)

    return _make


@pytest.fixture(scope="function")
def client(tracking: TimeTracking) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_tracking] = lambda: tracking
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
