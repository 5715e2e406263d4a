"""
tally.engine.attendance — Attendance State Machine
===================================================

Pure transition logic for one (user, event) pair.  No database I/O.

    NotJoined ──join──▶ Joined ──check_in──▶ CheckedIn ──check_out──▶ CheckedOut
        ▲                  │                     │
        └──────leave───────┴─────────leave───────┘

Each state is its own frozen dataclass, so a ``CheckedOut`` without a
check-in time cannot be built.  :func:`state_from_row` is the only place
that reads the nullable timestamp columns; everything else works with
the variants.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeAlias

from tally.errors import ErrorCode, StateConflict


class Transition(enum.StrEnum):
    JOIN = "join"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    LEAVE = "leave"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NotJoined:
    name = "not_joined"


@dataclass(frozen=True, slots=True)
class Joined:
    join_id: str
    joined_at: datetime

    name = "joined"


@dataclass(frozen=True, slots=True)
class CheckedIn:
    join_id: str
    joined_at: datetime
    checked_in_at: datetime

    name = "checked_in"


@dataclass(frozen=True, slots=True)
class CheckedOut:
    join_id: str
    joined_at: datetime
    checked_in_at: datetime
    checked_out_at: datetime

    name = "checked_out"


AttendanceState: TypeAlias = NotJoined | Joined | CheckedIn | CheckedOut


def state_from_row(row: Mapping[str, Any] | None) -> AttendanceState:
    """Derive the state variant from a ``joins`` row (or its absence).

    Raises ``ValueError`` on a row that breaks the Join invariants.
    """
    if row is None:
        return NotJoined()
    joined_at = row["joined_at"]
    checked_in_at = row.get("checked_in_at")
    checked_out_at = row.get("checked_out_at")
    if checked_in_at is None:
        if checked_out_at is not None:
            raise ValueError(f"join {row['id']} has a checkout without a check-in")
        return Joined(row["id"], joined_at)
    if checked_out_at is None:
        return CheckedIn(row["id"], joined_at, checked_in_at)
    return CheckedOut(row["id"], joined_at, checked_in_at, checked_out_at)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def check_transition(state: AttendanceState, transition: Transition) -> None:
    """Raise :class:`~tally.errors.StateConflict` unless *transition* is allowed."""
    if transition is Transition.JOIN:
        if not isinstance(state, NotJoined):
            raise StateConflict(ErrorCode.ALREADY_JOINED)
    elif transition is Transition.CHECK_IN:
        if isinstance(state, NotJoined):
            raise StateConflict(ErrorCode.NOT_JOINED)
        if not isinstance(state, Joined):
            raise StateConflict(ErrorCode.ALREADY_CHECKED_IN)
    elif transition is Transition.CHECK_OUT:
        if isinstance(state, NotJoined):
            raise StateConflict(ErrorCode.NOT_JOINED)
        if isinstance(state, Joined):
            raise StateConflict(ErrorCode.NOT_CHECKED_IN)
        if isinstance(state, CheckedOut):
            raise StateConflict(ErrorCode.ALREADY_CHECKED_OUT)
    elif transition is Transition.LEAVE:
        if isinstance(state, NotJoined):
            raise StateConflict(ErrorCode.NOT_JOINED)
        if isinstance(state, CheckedOut):
            raise StateConflict(ErrorCode.ALREADY_CHECKED_OUT)
    else:
        raise ValueError(f"Unknown transition: {transition!r}")


def _not_before(at: datetime, floor: datetime) -> datetime:
    # Clock skew must not produce joined_at > checked_in_at > checked_out_at.
    return at if at >= floor else floor


def apply_transition(
    state: AttendanceState,
    transition: Transition,
    at: datetime,
    *,
    join_id: str = "",
) -> AttendanceState:
    """Return the state after *transition* at time *at*.

    *join_id* names the record created by ``JOIN``.
    """
    check_transition(state, transition)
    if transition is Transition.JOIN:
        return Joined(join_id, at)
    if transition is Transition.CHECK_IN:
        return CheckedIn(state.join_id, state.joined_at, _not_before(at, state.joined_at))
    if transition is Transition.CHECK_OUT:
        return CheckedOut(
            state.join_id,
            state.joined_at,
            state.checked_in_at,
            _not_before(at, state.checked_in_at),
        )
    return NotJoined()


_RACE_FALLBACK: dict[Transition, ErrorCode] = {
    Transition.JOIN: ErrorCode.ALREADY_JOINED,
    Transition.CHECK_IN: ErrorCode.ALREADY_CHECKED_IN,
    Transition.CHECK_OUT: ErrorCode.ALREADY_CHECKED_OUT,
    Transition.LEAVE: ErrorCode.NOT_JOINED,
}


def conflict_for(transition: Transition, state: AttendanceState) -> StateConflict:
    """The conflict to report after a conditional write lost a race.

    The row is re-read and the error reflects what the caller would have
    seen had they arrived second.
    """
    try:
        check_transition(state, transition)
    except StateConflict as exc:
        return exc
    return StateConflict(_RACE_FALLBACK[transition])
