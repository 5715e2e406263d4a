"""
tally.services.event_service — Event Catalogue
===============================================

Organizers publish events; volunteers browse them and see the ones they
joined.  Events are never deleted in normal flow, so ledger rows can
always resolve their ``event_id`` to a title.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from tally.database.models import EventCause, new_id, utcnow
from tally.database.store import RecordStore, Row, gte, not_in, one_of
from tally.engine.attendance import state_from_row
from tally.errors import ErrorCode, ValidationError
from tally.identity import IdentityProvider, require_user
from tally.services.attendance_service import encode_qr_payload, load_event
from tally.services.result import as_result

logger = logging.getLogger(__name__)

MAX_EVENT_LIST = 500


def _invalid(message: str) -> ValidationError:
    return ValidationError(ErrorCode.INVALID_EVENT, message)


def _parse_cause(cause: Any) -> EventCause:
    try:
        return EventCause(cause)
    except ValueError:
        raise _invalid(f"Unknown cause: {cause!r}") from None


def _check_coordinate(name: str, value: Any, bound: float) -> float | None:
    if value is None:
        return None
    if not isinstance(value, (int, float)) or isinstance(value, bool) or abs(value) > bound:
        raise _invalid(f"{name} must be a number between -{bound:g} and {bound:g}.")
    return float(value)


@as_result
def create_event(
    store: RecordStore,
    identity: IdentityProvider,
    *,
    title: str,
    starts_at: datetime,
    ends_at: datetime,
    description: str = "",
    cause: EventCause | str = EventCause.OTHER,
    capacity: int | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    organization_id: str | None = None,
    now: datetime | None = None,
) -> Row:
    """Publish an event organised by the caller."""
    organizer = require_user(identity)
    if not isinstance(title, str) or not title.strip():
        raise _invalid("Title must not be blank.")
    if len(title.strip()) > 200:
        raise _invalid("Title is too long.")
    if not isinstance(starts_at, datetime) or not isinstance(ends_at, datetime):
        raise _invalid("Start and end must be timestamps.")
    if starts_at.tzinfo is None or ends_at.tzinfo is None:
        raise _invalid("Start and end must carry a timezone.")
    if ends_at < starts_at:
        raise _invalid("An event cannot end before it starts.")
    if capacity is not None and (
        not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0
    ):
        raise _invalid("Capacity must be a positive whole number.")

    event = store.insert("events", {
        "id": new_id(),
        "title": title.strip(),
        "description": (description or "").strip(),
        "cause": _parse_cause(cause).value,
        "starts_at": starts_at,
        "ends_at": ends_at,
        "latitude": _check_coordinate("latitude", latitude, 90),
        "longitude": _check_coordinate("longitude", longitude, 180),
        "capacity": capacity,
        "organization_id": organization_id,
        "created_by": organizer,
        "created_at": now or utcnow(),
    })
    logger.info("Event %s (%r) created by %s", event["id"], event["title"], organizer)
    return event


@as_result
def get_event(store: RecordStore, event_id: str) -> Row:
    return load_event(store, event_id)


@as_result
def list_events(
    store: RecordStore,
    *,
    limit: int = 100,
    cause: EventCause | str | None = None,
) -> list[Row]:
    """Events ordered by start time, optionally filtered by cause."""
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise _invalid("limit must be a positive whole number.")
    flt: dict[str, Any] = {}
    if cause is not None:
        flt["cause"] = _parse_cause(cause).value
    return store.select_many(
        "events", flt, limit=min(limit, MAX_EVENT_LIST), order_by=("starts_at", "id")
    )


@as_result
def get_event_qr_payload(store: RecordStore, event_id: str) -> dict[str, str]:
    """The string an organizer renders as the event's check-in QR code."""
    event = load_event(store, event_id)
    return {"event_id": event["id"], "payload": encode_qr_payload(event["id"])}


@as_result
def get_user_events(store: RecordStore, identity: IdentityProvider) -> list[dict[str, Any]]:
    """Events the caller joined, most recently joined first."""
    user_id = require_user(identity)
    joins = store.select_many("joins", {"user_id": user_id}, order_by=("-joined_at",))
    if not joins:
        return []
    events = {
        e["id"]: e
        for e in store.select_many("events", {"id": one_of(j["event_id"] for j in joins)})
    }
    return [
        {"event": events[j["event_id"]], "state": state_from_row(j).name, "join": j}
        for j in joins
        if j["event_id"] in events
    ]


@as_result
def upcoming_events(
    store: RecordStore,
    identity: IdentityProvider,
    *,
    limit: int = 10,
    now: datetime | None = None,
) -> list[Row]:
    """Events starting from *now* that the caller has not joined, soonest first.

    This is the home screen's "suggested events" list.
    """
    user_id = require_user(identity)
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise _invalid("limit must be a positive whole number.")
    joined = {j["event_id"] for j in store.select_many("joins", {"user_id": user_id})}
    flt: dict[str, Any] = {"starts_at": gte(now or utcnow())}
    if joined:
        flt["id"] = not_in(joined)
    return store.select_many(
        "events", flt, limit=min(limit, MAX_EVENT_LIST), order_by=("starts_at", "id")
    )
