"""
tally.database.store — Record Store Capability
===============================================

The core never touches ORM sessions directly.  It talks to a
:class:`RecordStore`: a small capability over named collections with
dict rows, equality filters and an optimistic precondition on update.

    store.insert("joins", {...})                          → row
    store.select_one("joins", {"user_id": u, "event_id": e}) → row | None
    store.select_many("points_ledger", {"user_id": u, "created_at": gte(t)})
    store.update("joins", {"id": j}, {"checked_in_at": now},
                 precondition={"checked_in_at": None})   → row | None
    store.delete("joins", {"id": j})                      → rows deleted

Filter values are matched with ``=``; ``None`` means ``IS NULL``; the
:func:`gte`, :func:`lt`, :func:`between`, :func:`ne`, :func:`one_of` and
:func:`not_in` wrappers express ranges and sets.

``update`` returns ``None`` when no row satisfied filter *and*
precondition.  That is how transitions stay atomic: the state check and
the write are one ``UPDATE … WHERE`` statement, so two racing callers
cannot both win.  ``delete`` takes the same kind of guard as ``require``
/ ``forbid``: the row goes only if some other row of the collection
matches (or none does), decided inside the ``DELETE`` itself.

Failure mapping:

* unique / check / foreign key violation → :class:`RecordConflict`
* value the column cannot hold (too long, wrong type) →
  :class:`~tally.errors.ValidationError` (``InvalidInput``)
* timeout, dropped connection, driver or pool failure →
  :class:`~tally.errors.BackendUnavailable` (never retried here)
* anything else (bad SQL, misuse) propagates

``points_ledger`` is append-only: ``update`` and ``delete`` refuse it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Connection, Engine, Table, delete, func, insert, select, update
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from tally.database.models import (
    Event,
    Group,
    GroupMembership,
    Join,
    PointsLedgerEntry,
    Profile,
)
from tally.errors import BackendUnavailable, ErrorCode, ValidationError

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filter = Mapping[str, Any]

COLLECTIONS: dict[str, Table] = {
    model.__tablename__: model.__table__
    for model in (Profile, Event, Join, PointsLedgerEntry, Group, GroupMembership)
}

APPEND_ONLY: frozenset[str] = frozenset({"points_ledger"})


# ---------------------------------------------------------------------------
# Filter conditions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Condition:
    op: str
    value: Any


def gte(value: Any) -> Condition:
    """Match rows whose column is ``>= value``."""
    return Condition("gte", value)


def lt(value: Any) -> Condition:
    """Match rows whose column is ``< value``."""
    return Condition("lt", value)


def between(low: Any, high: Any) -> Condition:
    """Match rows whose column is in the half-open range ``[low, high)``."""
    return Condition("between", (low, high))


def ne(value: Any) -> Condition:
    """Match rows whose column differs from *value*."""
    return Condition("ne", value)


def one_of(values: Iterable[Any]) -> Condition:
    """Match rows whose column is in *values*."""
    return Condition("in", tuple(values))


def not_in(values: Iterable[Any]) -> Condition:
    """Match rows whose column is not in *values*."""
    return Condition("not_in", tuple(values))


class RecordConflict(Exception):
    """A write violated a unique, check or foreign key constraint."""

    def __init__(self, collection: str, detail: str = "") -> None:
        self.collection = collection
        self.detail = detail
        super().__init__(f"{collection}: {detail}" if detail else collection)


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------
class RecordStore(ABC):
    """Read/write access to the named collections."""

    @abstractmethod
    def insert(self, collection: str, row: Mapping[str, Any]) -> Row:
        """Insert *row* and return it as stored (generated id included)."""

    @abstractmethod
    def select_one(
        self, collection: str, filter: Filter, *, for_update: bool = False
    ) -> Row | None:
        """Return the first row matching *filter*, or ``None``."""

    @abstractmethod
    def select_many(
        self,
        collection: str,
        filter: Filter,
        limit: int | None = None,
        order_by: Sequence[str] = (),
        *,
        for_update: bool = False,
    ) -> list[Row]:
        """Return rows matching *filter*.

        *order_by* entries are column names; a leading ``-`` sorts descending.
        With *for_update* the rows stay locked until the surrounding
        transaction ends (a no-op on backends without row locks).
        """

    @abstractmethod
    def count(self, collection: str, filter: Filter) -> int:
        """Number of rows matching *filter*."""

    @abstractmethod
    def update(
        self,
        collection: str,
        filter: Filter,
        patch: Mapping[str, Any],
        precondition: Filter | None = None,
    ) -> Row | None:
        """Apply *patch* to the row matching *filter* and *precondition*.

        Returns the updated row, or ``None`` if nothing matched.
        """

    @abstractmethod
    def delete(
        self,
        collection: str,
        filter: Filter,
        *,
        require: Filter | None = None,
        forbid: Filter | None = None,
    ) -> int:
        """Delete rows matching *filter*; returns how many were removed.

        *require* / *forbid* are filters over the same collection: the
        delete only happens if some row matches *require* and no row
        matches *forbid*, checked by the same statement.
        """

    @abstractmethod
    def transaction(self) -> Iterator[RecordStore]:
        """Context manager yielding a store whose writes commit together."""


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------
def _to_storage(value: Any) -> Any:
    # All timestamps are written as UTC; SQLite drops the offset.
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(UTC)
    return value


def _from_storage(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlRecordStore(RecordStore):
    """:class:`RecordStore` backed by SQLAlchemy Core.

    An unbound store runs every call in its own short transaction.  The
    store yielded by :meth:`transaction` is bound to one connection and
    commits (or rolls back) when the ``with`` block exits.
    """

    def __init__(self, engine: Engine, connection: Connection | None = None) -> None:
        self._engine = engine
        self._conn = connection

    @property
    def engine(self) -> Engine:
        return self._engine

    # -- plumbing ----------------------------------------------------------
    @staticmethod
    def _table(collection: str) -> Table:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection!r}") from None

    @contextmanager
    def _guard(self, op: str, collection: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise RecordConflict(collection, str(exc.orig)) from exc
        except DataError as exc:
            logger.info("Record store %s on %s rejected a value: %s", op, collection, exc.orig)
            raise ValidationError(ErrorCode.INVALID_INPUT) from exc
        except (OperationalError, InterfaceError, PoolTimeoutError, DisconnectionError) as exc:
            logger.warning("Record store %s on %s failed: %s", op, collection, exc)
            raise BackendUnavailable() from exc
        except DBAPIError as exc:
            if not exc.connection_invalidated:
                raise
            logger.warning("Record store %s on %s lost its connection: %s", op, collection, exc)
            raise BackendUnavailable() from exc

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if self._conn is not None:
            yield self._conn
        else:
            with self._engine.begin() as conn:
                yield conn

    @staticmethod
    def _where(table: Table, flt: Filter | None) -> list:
        clauses = []
        for key, value in (flt or {}).items():
            col = table.c[key]
            if isinstance(value, Condition):
                if value.op == "gte":
                    clauses.append(col >= _to_storage(value.value))
                elif value.op == "lt":
                    clauses.append(col < _to_storage(value.value))
                elif value.op == "between":
                    low, high = value.value
                    clauses.append(col >= _to_storage(low))
                    clauses.append(col < _to_storage(high))
                elif value.op == "ne":
                    if value.value is None:
                        clauses.append(col.is_not(None))
                    else:
                        clauses.append(col != _to_storage(value.value))
                elif value.op == "in":
                    clauses.append(col.in_([_to_storage(v) for v in value.value]))
                elif value.op == "not_in":
                    clauses.append(col.not_in([_to_storage(v) for v in value.value]))
                else:
                    raise ValueError(f"Unsupported condition: {value.op!r}")
            elif value is None:
                clauses.append(col.is_(None))
            else:
                clauses.append(col == _to_storage(value))
        return clauses

    @staticmethod
    def _row(mapping: Mapping[str, Any]) -> Row:
        return {key: _from_storage(value) for key, value in mapping.items()}

    # -- capability --------------------------------------------------------
    def insert(self, collection: str, row: Mapping[str, Any]) -> Row:
        table = self._table(collection)
        values = {key: _to_storage(value) for key, value in row.items()}
        with self._guard("insert", collection), self._connection() as conn:
            result = conn.execute(insert(table).values(**values))
            pk = dict(zip(
                (col.name for col in table.primary_key.columns),
                result.inserted_primary_key,
                strict=True,
            ))
            stored = conn.execute(
                select(table).where(*self._where(table, pk))
            ).mappings().first()
        return self._row(stored)

    def select_one(
        self, collection: str, filter: Filter, *, for_update: bool = False
    ) -> Row | None:
        rows = self.select_many(collection, filter, limit=1, for_update=for_update)
        return rows[0] if rows else None

    def select_many(
        self,
        collection: str,
        filter: Filter,
        limit: int | None = None,
        order_by: Sequence[str] = (),
        *,
        for_update: bool = False,
    ) -> list[Row]:
        table = self._table(collection)
        stmt = select(table).where(*self._where(table, filter))
        for key in order_by:
            if key.startswith("-"):
                stmt = stmt.order_by(table.c[key[1:]].desc())
            else:
                stmt = stmt.order_by(table.c[key])
        if limit is not None:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update()
        with self._guard("select", collection), self._connection() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [self._row(r) for r in rows]

    def count(self, collection: str, filter: Filter) -> int:
        table = self._table(collection)
        stmt = select(func.count()).select_from(table).where(*self._where(table, filter))
        with self._guard("count", collection), self._connection() as conn:
            return int(conn.execute(stmt).scalar_one())

    def update(
        self,
        collection: str,
        filter: Filter,
        patch: Mapping[str, Any],
        precondition: Filter | None = None,
    ) -> Row | None:
        if collection in APPEND_ONLY:
            raise ValueError(f"{collection} is append-only")
        if not filter:
            raise ValueError("update requires a filter")
        table = self._table(collection)
        values = {key: _to_storage(value) for key, value in patch.items()}
        stmt = (
            update(table)
            .where(*self._where(table, filter), *self._where(table, precondition))
            .values(**values)
        )
        with self._guard("update", collection), self._connection() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                return None
            stored = conn.execute(
                select(table).where(*self._where(table, filter))
            ).mappings().first()
        return self._row(stored) if stored is not None else None

    def delete(
        self,
        collection: str,
        filter: Filter,
        *,
        require: Filter | None = None,
        forbid: Filter | None = None,
    ) -> int:
        if collection in APPEND_ONLY:
            raise ValueError(f"{collection} is append-only")
        if not filter:
            raise ValueError("delete requires a filter")
        table = self._table(collection)
        clauses = self._where(table, filter)
        if require:
            other = table.alias("other")
            clauses.append(select(other).where(*self._where(other, require)).exists())
        if forbid:
            other = table.alias("other")
            clauses.append(~select(other).where(*self._where(other, forbid)).exists())
        with self._guard("delete", collection), self._connection() as conn:
            result = conn.execute(delete(table).where(*clauses))
            return int(result.rowcount)

    @contextmanager
    def transaction(self) -> Iterator[RecordStore]:
        if self._conn is not None:
            # Already inside a transaction; join it.
            yield self
            return
        with self._guard("transaction", "*"), self._engine.begin() as conn:
            yield SqlRecordStore(self._engine, conn)
