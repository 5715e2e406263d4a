"""
tally.config — YAML Configuration Loader
=========================================

**Why this file exists:**
Point amounts and the week boundary are deployment decisions, not code.
They must be identical for every process in a deployment (API workers,
migrations, one-off scripts), so they live in ``config.yaml`` and are
loaded once into an immutable object.  Secrets (``DATABASE_URL``,
``JWT_SECRET``) stay in the environment.

The award amounts and the week boundary have no fallbacks; a deployment
has to state them.

Usage::

    from tally.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.award_policy)      # "flat"
    print(cfg.week_start)        # 0  (Monday)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

AWARD_POLICIES: tuple[str, ...] = ("flat", "duration")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TallyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Award policy
    award_policy: str  # "flat" | "duration"
    checkin_points: int

    # Week buckets (streaks) and month windows (group goals)
    week_start: int  # 0 = Monday … 6 = Sunday
    timezone: str  # IANA zone name

    checkout_points: int = 0  # flat policy only
    points_per_hour: int = 0  # duration policy only
    max_award_hours: int = 8  # duration policy cap

    # API
    api_port: int = 8000
    event_list_limit: int = 100

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _parse_week_start(value: str) -> int:
    name = str(value).strip().lower()
    if name not in WEEKDAYS:
        raise ValueError(
            f"streaks.week_start must be one of {', '.join(WEEKDAYS)} (got {value!r})"
        )
    return WEEKDAYS.index(name)


def _validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"streaks.timezone is not a known IANA zone: {name!r}") from exc
    return name


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TallyConfig:
    """Read *path* and return a :class:`TallyConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If a value is present but unusable (unknown policy, weekday or zone).
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    awards = raw["awards"]
    streaks = raw["streaks"]

    policy = str(awards["policy"]).strip().lower()
    if policy not in AWARD_POLICIES:
        raise ValueError(
            f"awards.policy must be one of {', '.join(AWARD_POLICIES)} (got {policy!r})"
        )

    return TallyConfig(
        community_name=raw["community_name"],
        award_policy=policy,
        checkin_points=int(awards["checkin_points"]),
        checkout_points=int(awards["checkout_points"]) if policy == "flat" else 0,
        points_per_hour=int(awards["points_per_hour"]) if policy == "duration" else 0,
        max_award_hours=int(awards.get("max_hours", 8)),
        week_start=_parse_week_start(streaks["week_start"]),
        timezone=_validate_timezone(streaks["timezone"]),
        api_port=int(raw.get("api_port", 8000)),
        event_list_limit=int(raw.get("event_list_limit", 100)),
    )
