"""
tests/conftest.py
Shared fixtures for the test suite.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models as _models  # noqa: F401
from core import clock
from core.round_manager import RoundManager
from database import Base, get_db
from main import app

ADMIN = "0x00000000000000000000000000000000000000a1"
FIRST = "0x00000000000000000000000000000000000000b1"
SECOND = "0x00000000000000000000000000000000000000b2"
THIRD = "0x00000000000000000000000000000000000000b3"
DESTINATION = "0x00000000000000000000000000000000000000d1"
NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

ETHER = 10 ** 18


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every connection of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    clock.ensure_clock(session)
    session.commit()
    session.close()
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Provide a session bound to the in-memory ledger."""
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine):
    """FastAPI TestClient whose get_db dependency points at the in-memory ledger."""
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def travel(db):
    """Advance the logical clock between operations."""
    def _travel(ticks: int = 1) -> int:
        tick = clock.advance(db, ticks)
        db.commit()
        return tick
    return _travel


@pytest.fixture
def make_round(db):
    """Create a round administered by ADMIN at the current tick."""
    def _make_round(offsets=(1, 2, 3, 4), commission=5, administrator=ADMIN):
        return RoundManager.create_round(db, administrator, commission, *offsets)
    return _make_round
