"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of tally.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tally.config import TallyConfig  # noqa: E402
from tally.database.engine import enable_sqlite_foreign_keys  # noqa: E402
from tally.database.models import Base, new_id  # noqa: E402
from tally.database.store import SqlRecordStore  # noqa: E402
from tally.engine.awards import FlatAwardPolicy  # noqa: E402
from tally.engine.streaks import WeekCalendar  # noqa: E402
from tally.identity import StaticIdentity  # noqa: E402

# Wednesday 18 March 2026, mid-afternoon UTC.
NOW = datetime(2026, 3, 18, 15, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """An in-memory SQLite engine with all Tally tables.

    StaticPool keeps every connection on the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def store(db_engine: Engine) -> SqlRecordStore:
    return SqlRecordStore(db_engine)


@pytest.fixture
def fk_store() -> SqlRecordStore:
    """Like ``store``, with foreign keys enforced the way PostgreSQL does."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    return SqlRecordStore(engine)


@pytest.fixture
def cfg() -> TallyConfig:
    return TallyConfig(
        community_name="Test Volunteers",
        award_policy="flat",
        checkin_points=10,
        checkout_points=5,
        week_start=0,
        timezone="UTC",
    )


@pytest.fixture
def calendar() -> WeekCalendar:
    """Weeks start Monday 00:00 UTC."""
    return WeekCalendar(week_start=0, tz=UTC)


@pytest.fixture
def policy() -> FlatAwardPolicy:
    return FlatAwardPolicy(checkin=10, checkout=5)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def alice() -> StaticIdentity:
    return StaticIdentity("user-alice")


@pytest.fixture
def bob() -> StaticIdentity:
    return StaticIdentity("user-bob")


@pytest.fixture
def anonymous() -> StaticIdentity:
    return StaticIdentity(None)


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_event(store, *, capacity: int | None = None, title: str = "Beach Cleanup", **extra) -> dict:
    """Insert an event row directly and return it."""
    row = {
        "id": new_id(),
        "title": title,
        "description": "Bring gloves.",
        "cause": "environment",
        "starts_at": NOW + timedelta(days=1),
        "ends_at": NOW + timedelta(days=1, hours=3),
        "capacity": capacity,
        "created_by": "organizer-1",
        "created_at": NOW - timedelta(days=7),
    }
    row.update(extra)
    return store.insert("events", row)


def make_profile(store, user_id: str, display_name: str) -> dict:
    return store.insert("profiles", {
        "id": user_id,
        "display_name": display_name,
        "created_at": NOW - timedelta(days=30),
    })


def add_entry(store, user_id: str, amount: int, created_at: datetime, reason: str = "manual_award") -> dict:
    """Append a ledger row with an explicit timestamp."""
    return store.insert("points_ledger", {
        "id": new_id(),
        "user_id": user_id,
        "amount": amount,
        "reason": reason,
        "created_at": created_at,
    })


def make_token(sub: str, *, is_admin: bool = False) -> str:
    """Create a bearer JWT signed with the test secret."""
    import jwt

    from tally.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "is_admin": is_admin}, JWT_SECRET, algorithm=JWT_ALGORITHM)
