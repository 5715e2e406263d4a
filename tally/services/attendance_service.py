"""
tally.services.attendance_service — Join, Check-in, Check-out, Leave
=====================================================================

Drives the attendance state machine against the record store.

Each transition runs in one transaction:

1. read the event and the caller's Join row
2. validate the transition on the derived state variant
3. conditional write (``UPDATE … WHERE checked_in_at IS NULL`` and
   friends), so a racing second request matches zero rows
4. append the ledger award, if the configured policy yields one

If the conditional write matches nothing, or the ledger's unique
attendance index rejects the award, the transaction rolls back and the
caller gets the conflict it would have seen arriving second.  A replayed
check-in therefore never awards twice.

QR payloads name an event, never a user: the acting user is always the
authenticated caller.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from tally.database.models import new_id, utcnow
from tally.database.store import RecordConflict, RecordStore, Row
from tally.engine.attendance import (
    AttendanceState,
    CheckedIn,
    Transition,
    apply_transition,
    check_transition,
    conflict_for,
    state_from_row,
)
from tally.engine.awards import AwardPolicy, award_for
from tally.errors import ErrorCode, NotFoundError, StateConflict, ValidationError
from tally.identity import IdentityProvider, require_user
from tally.services.ledger_service import append_entry
from tally.services.result import as_result

logger = logging.getLogger(__name__)

QR_SCHEME = "tally://event/"
_EVENT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{0,35}$")


class _LostRace(Exception):
    """The conditional write matched no row."""


# ---------------------------------------------------------------------------
# QR payloads
# ---------------------------------------------------------------------------
def encode_qr_payload(event_id: str) -> str:
    return f"{QR_SCHEME}{event_id}"


def parse_qr_payload(payload: Any) -> str:
    """Return the event id named by a scanned QR payload.

    Accepts a bare event id or ``tally://event/<id>``.
    """
    if not isinstance(payload, str):
        raise ValidationError(ErrorCode.INVALID_QR_PAYLOAD)
    text = payload.strip()
    if text.lower().startswith(QR_SCHEME):
        text = text[len(QR_SCHEME):]
    if not _EVENT_ID_RE.match(text):
        raise ValidationError(ErrorCode.INVALID_QR_PAYLOAD)
    return text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def load_event(store: RecordStore, event_id: str) -> Row:
    event = store.select_one("events", {"id": event_id})
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND)
    return event


def load_join(store: RecordStore, user_id: str, event_id: str) -> Row | None:
    return store.select_one("joins", {"user_id": user_id, "event_id": event_id})


def _attendance(
    event_id: str,
    user_id: str,
    state: AttendanceState,
    award: Row | None = None,
) -> dict[str, Any]:
    return {
        "event_id": event_id,
        "user_id": user_id,
        "state": state.name,
        "joined_at": getattr(state, "joined_at", None),
        "checked_in_at": getattr(state, "checked_in_at", None),
        "checked_out_at": getattr(state, "checked_out_at", None),
        "points_awarded": award["amount"] if award else 0,
    }


def _reread_conflict(
    store: RecordStore, transition: Transition, user_id: str, event_id: str
) -> StateConflict:
    return conflict_for(transition, state_from_row(load_join(store, user_id, event_id)))


# ---------------------------------------------------------------------------
# Transitions (raise domain errors)
# ---------------------------------------------------------------------------
def _join(store: RecordStore, user_id: str, event_id: str, now: datetime) -> dict[str, Any]:
    try:
        with store.transaction() as tx:
            event = load_event(tx, event_id)
            check_transition(state_from_row(load_join(tx, user_id, event_id)), Transition.JOIN)
            capacity = event.get("capacity")
            if capacity is not None and tx.count("joins", {"event_id": event_id}) >= capacity:
                raise StateConflict(ErrorCode.EVENT_FULL)
            row = tx.insert("joins", {
                "id": new_id(),
                "event_id": event_id,
                "user_id": user_id,
                "joined_at": now,
            })
    except RecordConflict:
        raise StateConflict(ErrorCode.ALREADY_JOINED) from None
    logger.info("User %s joined event %s", user_id, event_id)
    return _attendance(event_id, user_id, state_from_row(row))


def _advance(
    store: RecordStore,
    user_id: str,
    event_id: str,
    transition: Transition,
    policy: AwardPolicy,
    now: datetime,
) -> dict[str, Any]:
    """Run ``CHECK_IN`` or ``CHECK_OUT`` and append its award."""
    try:
        with store.transaction() as tx:
            event = load_event(tx, event_id)
            row = load_join(tx, user_id, event_id)
            new_state = apply_transition(state_from_row(row), transition, now)
            if isinstance(new_state, CheckedIn):
                patch = {"checked_in_at": new_state.checked_in_at}
                precondition = {"checked_in_at": None}
            else:
                patch = {"checked_out_at": new_state.checked_out_at}
                precondition = {"checked_out_at": None}
            if tx.update("joins", {"id": row["id"]}, patch, precondition) is None:
                raise _LostRace()

            entry = None
            earned = award_for(policy, event, new_state)
            if earned is not None and earned[1] > 0:
                reason, amount = earned
                entry = append_entry(
                    tx, user_id, amount, reason, event_id=event_id, now=now
                )
    except (_LostRace, RecordConflict):
        raise _reread_conflict(store, transition, user_id, event_id) from None

    verb = "checked in to" if isinstance(new_state, CheckedIn) else "checked out of"
    logger.info("User %s %s event %s", user_id, verb, event_id)
    return _attendance(event_id, user_id, new_state, entry)


def _leave(store: RecordStore, user_id: str, event_id: str) -> dict[str, Any]:
    with store.transaction() as tx:
        row = load_join(tx, user_id, event_id)
        state = state_from_row(row)
        new_state = apply_transition(state, Transition.LEAVE, utcnow())
        deleted = tx.delete("joins", {"id": row["id"], "checked_out_at": None})
    if deleted == 0:
        raise _reread_conflict(store, Transition.LEAVE, user_id, event_id)
    logger.info("User %s left event %s", user_id, event_id)
    return _attendance(event_id, user_id, new_state)


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
@as_result
def join_event(
    store: RecordStore,
    identity: IdentityProvider,
    event_id: str,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Create the caller's Join for *event_id*."""
    return _join(store, require_user(identity), event_id, now or utcnow())


@as_result
def check_in(
    store: RecordStore,
    identity: IdentityProvider,
    event_id: str,
    *,
    policy: AwardPolicy,
    now: datetime | None = None,
) -> dict[str, Any]:
    return _advance(
        store, require_user(identity), event_id, Transition.CHECK_IN, policy, now or utcnow()
    )


@as_result
def check_out(
    store: RecordStore,
    identity: IdentityProvider,
    event_id: str,
    *,
    policy: AwardPolicy,
    now: datetime | None = None,
) -> dict[str, Any]:
    return _advance(
        store, require_user(identity), event_id, Transition.CHECK_OUT, policy, now or utcnow()
    )


@as_result
def leave_event(
    store: RecordStore,
    identity: IdentityProvider,
    event_id: str,
) -> dict[str, Any]:
    """Delete the caller's Join.  Not allowed once checked out."""
    return _leave(store, require_user(identity), event_id)


@as_result
def check_in_from_qr(
    store: RecordStore,
    identity: IdentityProvider,
    payload: str,
    *,
    policy: AwardPolicy,
    now: datetime | None = None,
) -> dict[str, Any]:
    user_id = require_user(identity)
    return _advance(
        store, user_id, parse_qr_payload(payload), Transition.CHECK_IN, policy, now or utcnow()
    )


@as_result
def check_out_from_qr(
    store: RecordStore,
    identity: IdentityProvider,
    payload: str,
    *,
    policy: AwardPolicy,
    now: datetime | None = None,
) -> dict[str, Any]:
    user_id = require_user(identity)
    return _advance(
        store, user_id, parse_qr_payload(payload), Transition.CHECK_OUT, policy, now or utcnow()
    )


def attendance_state(store: RecordStore, user_id: str, event_id: str) -> AttendanceState:
    return state_from_row(load_join(store, user_id, event_id))
