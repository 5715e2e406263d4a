"""
tally.database.models — SQLAlchemy 2.0 Data Models
====================================================

Tables (the record store's collections):
- profiles       — Display data for a user id (written by the auth layer)
- events         — Volunteer events published by organizers
- joins          — One attendance record per (user, event)
- points_ledger  — Append-only point transactions, the only source of totals
- groups         — Volunteer groups with a monthly point goal
- group_members  — One membership per (group, user) with a role

Identifiers are UUID strings so rows can be created by any client.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Tally ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EventCause(enum.StrEnum):
    """Cause category an event is filed under."""
    FOOD_SECURITY = "food_security"
    ANIMAL_WELFARE = "animal_welfare"
    ENVIRONMENT = "environment"
    EDUCATION = "education"
    HEALTH = "health"
    COMMUNITY = "community"
    OTHER = "other"


class LedgerReason(enum.StrEnum):
    """Why a points_ledger row was written."""
    EVENT_CHECKIN = "event_checkin"
    EVENT_CHECKOUT = "event_checkout"
    MANUAL_AWARD = "manual_award"
    CORRECTION = "correction"


ATTENDANCE_REASONS: frozenset[LedgerReason] = frozenset({
    LedgerReason.EVENT_CHECKIN,
    LedgerReason.EVENT_CHECKOUT,
})

_ATTENDANCE_AWARD = text(
    "event_id IS NOT NULL AND reason IN ('event_checkin', 'event_checkout')"
)


class GroupRole(enum.StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


# ---------------------------------------------------------------------------
# Profiles — one row per user id
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# Events — published by organizers, never deleted in normal flow
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    cause: Mapped[str] = mapped_column(
        String(30), nullable=False, default=EventCause.OTHER.value
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, default=None)
    longitude: Mapped[float | None] = mapped_column(Float, default=None)
    capacity: Mapped[int | None] = mapped_column(Integer, default=None)
    organization_id: Mapped[str | None] = mapped_column(String(36), default=None)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity > 0", name="ck_events_capacity"),
        Index("ix_events_starts_at", "starts_at"),
        Index("ix_events_cause", "cause"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Joins — the attendance record, mutated in place on check-in / check-out
# ---------------------------------------------------------------------------
class Join(Base):
    __tablename__ = "joins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    checked_in_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    checked_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_joins_event_user"),
        CheckConstraint(
            "checked_out_at IS NULL OR checked_in_at IS NOT NULL",
            name="ck_joins_checkout_after_checkin",
        ),
        Index("ix_joins_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Join event={self.event_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# PointsLedger — append-only, never updated or deleted
# ---------------------------------------------------------------------------
class PointsLedgerEntry(Base):
    __tablename__ = "points_ledger"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    event_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_points_ledger_nonzero"),
        # At most one attendance award per (user, event, reason); rejects a
        # racing duplicate at write time even if both saw the same Join state.
        Index(
            "ix_points_ledger_attendance_once",
            "user_id",
            "event_id",
            "reason",
            unique=True,
            postgresql_where=_ATTENDANCE_AWARD,
            sqlite_where=_ATTENDANCE_AWARD,
        ),
        Index("ix_points_ledger_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointsLedgerEntry user={self.user_id} amount={self.amount} "
            f"reason={self.reason}>"
        )


# ---------------------------------------------------------------------------
# Groups — monthly goal + invite code
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    monthly_goal: Mapped[int] = mapped_column(Integer, nullable=False)
    invite_code: Mapped[str] = mapped_column(String(12), nullable=False, unique=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("monthly_goal > 0", name="ck_groups_goal_positive"),
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# GroupMembership — composite PK enforces one membership per (group, user)
# ---------------------------------------------------------------------------
class GroupMembership(Base):
    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    role: Mapped[str] = mapped_column(
        String(10), nullable=False, default=GroupRole.MEMBER.value
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_group_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<GroupMembership group={self.group_id} user={self.user_id} role={self.role}>"
