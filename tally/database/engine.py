"""
tally.database.engine — Database Connection
============================================

Builds the SQLAlchemy :class:`Engine` that backs the record store.

Every call into the store must be bounded: a request that hangs on the
database would otherwise hang the caller.  Three limits apply, all derived
from ``STORE_TIMEOUT_SECONDS`` (default 5):

    * ``pool_timeout`` — waiting for a free pooled connection.
    * ``connect_timeout`` — opening a new PostgreSQL connection.
    * ``statement_timeout`` — server-side cap on each statement.

When any of them trips, :mod:`tally.database.store` reports
``BackendUnavailable`` and does not retry.

Usage::

    from tally.database.engine import create_db_engine, init_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url

from tally.database.models import Base

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def store_timeout() -> float:
    """Read ``STORE_TIMEOUT_SECONDS`` from the environment."""
    raw = os.getenv("STORE_TIMEOUT_SECONDS", "").strip()
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    value = float(raw)
    if value <= 0:
        raise RuntimeError("STORE_TIMEOUT_SECONDS must be positive.")
    return value


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None, timeout: float | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or the ``DATABASE_URL`` env var.

    The connection pool is sized for a small API deployment:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )
    timeout = timeout if timeout is not None else store_timeout()

    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        engine = create_engine(
            url,
            echo=False,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
        enable_sqlite_foreign_keys(engine)
    else:
        connect_args = {}
        if backend == "postgresql":
            connect_args = {
                "connect_timeout": max(1, int(timeout)),
                "options": f"-c statement_timeout={int(timeout * 1000)}",
            }
        engine = create_engine(
            url,
            echo=False,        # Set True for SQL debugging
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=timeout,
            pool_recycle=3600,
            connect_args=connect_args,
        )
    logger.info("Database engine created → %s (%s)", engine.url.host or backend, backend)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`tally.database.models`.

    Safe to call on every startup — ``CREATE TABLE IF NOT EXISTS`` under
    the hood.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments
        where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on foreign key enforcement for every new SQLite connection.

    SQLite ships with it off; PostgreSQL always enforces.
    """
    @event.listens_for(engine, "connect")
    def _foreign_keys_on(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
