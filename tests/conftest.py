"""Shared test fixtures for the bKash payment verifier tests.

Uses a SQLite file database so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override settings before importing anything from bkash_verifier: the
# Settings model reads the environment eagerly via pydantic-settings, and
# the module-level ``engine`` would otherwise point at PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["SWEEP_ENABLED"] = "false"
os.environ.pop("WEBHOOK_SECRET", None)

from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from bkash_verifier.core.config import Settings
from bkash_verifier.core.database import Base, get_db
from bkash_verifier.main import app
from bkash_verifier.repositories.receiver_repo import ReceiverRepository
from bkash_verifier.services.sessions import SessionService
from bkash_verifier.services.verification.fulfillment import get_fulfillment_sink
from tests.factories import RECEIVER_A, RECEIVER_B, T0, RecordingSink

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def config() -> Settings:
    return Settings(database_url=TEST_DATABASE_URL, sweep_enabled=False)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def receivers(db_session):
    """Two active receivers, registered in a fixed order."""
    repo = ReceiverRepository(db_session)
    repo.add(RECEIVER_A, "Counter A")
    db_session.commit()
    repo.add(RECEIVER_B, "Counter B")
    db_session.commit()
    return [RECEIVER_A, RECEIVER_B]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_session(db_session, config, receivers):
    """Factory: open a session at ``T0`` (or ``now``) for 500.00 taka."""

    def _make(amount_minor: int = 50000, now: datetime = T0, **overrides):
        fields = {
            "item_code": "EVT-2025-DHAKA",
            "ticket_choice": "General Admission",
            "amount_minor": amount_minor,
            "customer_info": {
                "name": "Rahim Uddin",
                "phone": "01555000111",
                "email": "rahim@example.com",
            },
            "form_data": {"seat": "A12"},
        }
        fields.update(overrides)
        return SessionService(db_session, config).create(now=now, **fields)

    return _make


@pytest.fixture(scope="function")
def client(db_session, sink):
    """FastAPI test client with overridden DB and fulfillment dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fulfillment_sink] = lambda: sink
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
