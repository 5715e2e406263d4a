"""
tally.api.routes.attendance — Join / check-in / check-out endpoints
====================================================================

The acting user is always the bearer of the token.  A scanned QR code
only says *which* event.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tally.api.deps import get_identity, get_policy, get_store, unwrap
from tally.database.store import RecordStore
from tally.engine.awards import AwardPolicy
from tally.identity import IdentityProvider
from tally.services import attendance_service

router = APIRouter(tags=["attendance"])


class QRScan(BaseModel):
    payload: str
    action: Literal["check_in", "check_out"] = "check_in"


@router.post("/events/{event_id}/join", status_code=201)
def join_event(
    event_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(attendance_service.join_event(store, identity, event_id))


@router.delete("/events/{event_id}/join")
def leave_event(
    event_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(attendance_service.leave_event(store, identity, event_id))


@router.post("/events/{event_id}/check-in")
def check_in(
    event_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    policy: AwardPolicy = Depends(get_policy),
):
    return unwrap(attendance_service.check_in(store, identity, event_id, policy=policy))


@router.post("/events/{event_id}/check-out")
def check_out(
    event_id: str,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    policy: AwardPolicy = Depends(get_policy),
):
    return unwrap(attendance_service.check_out(store, identity, event_id, policy=policy))


@router.post("/attendance/scan")
def scan(
    body: QRScan,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    policy: AwardPolicy = Depends(get_policy),
):
    """Check in or out from a scanned event QR payload."""
    if body.action == "check_out":
        result = attendance_service.check_out_from_qr(store, identity, body.payload, policy=policy)
    else:
        result = attendance_service.check_in_from_qr(store, identity, body.payload, policy=policy)
    return unwrap(result)
