"""
tally.api.routes.events — Event catalogue endpoints
====================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from tally.api.deps import get_config, get_current_admin, get_identity, get_store, unwrap
from tally.config import TallyConfig
from tally.database.store import RecordStore
from tally.identity import IdentityProvider
from tally.services import event_service

router = APIRouter(tags=["events"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    title: str
    starts_at: datetime
    ends_at: datetime
    description: str = ""
    cause: str = "other"
    capacity: int | None = Field(default=None, gt=0)
    latitude: float | None = None
    longitude: float | None = None
    organization_id: str | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.get("/events")
def list_events(
    limit: int | None = Query(None, ge=1, le=500),
    cause: str | None = None,
    store: RecordStore = Depends(get_store),
    cfg: TallyConfig = Depends(get_config),
):
    """Events by start time; *limit* defaults to ``event_list_limit``."""
    return unwrap(event_service.list_events(
        store, limit=limit or cfg.event_list_limit, cause=cause
    ))


@router.post("/events", status_code=201)
def create_event(
    body: EventCreate,
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    admin: str = Depends(get_current_admin),  # noqa: ARG001
):
    """Publish an event (organizers only)."""
    return unwrap(event_service.create_event(store, identity, **body.model_dump()))


@router.get("/events/{event_id}")
def get_event(event_id: str, store: RecordStore = Depends(get_store)):
    return unwrap(event_service.get_event(store, event_id))


@router.get("/events/{event_id}/qr")
def get_event_qr(
    event_id: str,
    store: RecordStore = Depends(get_store),
    admin: str = Depends(get_current_admin),  # noqa: ARG001
):
    return unwrap(event_service.get_event_qr_payload(store, event_id))


@router.get("/me/events")
def my_events(
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    return unwrap(event_service.get_user_events(store, identity))


@router.get("/me/suggested-events")
def suggested_events(
    limit: int = Query(10, ge=1, le=100),
    store: RecordStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    """Upcoming events the caller has not joined yet."""
    return unwrap(event_service.upcoming_events(store, identity, limit=limit))
