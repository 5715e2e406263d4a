"""
Tally — Volunteer Attendance & Points Ledger
=============================================
Records who showed up to which volunteer event, turns that presence into
points on an append-only ledger, and derives weekly streaks, monthly
group goals and leaderboards from it.

Package layout::

    tally/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Error taxonomy returned to callers
    ├── identity.py        # Identity providers (static, bearer JWT)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine factory + timeouts
    │   ├── models.py      # ORM models (6 tables)
    │   └── store.py       # RecordStore capability over SQLAlchemy Core
    ├── engine/
    │   ├── attendance.py  # Attendance state machine (pure)
    │   ├── awards.py      # Pluggable point award policies
    │   ├── streaks.py     # Week buckets, streaks, month windows
    │   ├── ranking.py     # Leaderboard ordering + goal progress
    │   └── tiers.py       # Volunteer tiers from lifetime points
    ├── services/
    │   ├── result.py              # OpResult (data, error) boundary
    │   ├── attendance_service.py  # join / check-in / check-out / leave
    │   ├── ledger_service.py      # award, sums, streaks
    │   ├── group_service.py       # groups, memberships, leaderboards
    │   ├── event_service.py       # event catalogue + QR payloads
    │   └── profile_service.py     # profile summary + activity feed
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → identity, store, config
        └── routes/        # events, attendance, points, groups
"""

__version__ = "0.1.0"
