"""
tally.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated, NoReturn, TypeVar

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import Engine

from tally.config import TallyConfig, load_config
from tally.database.engine import create_db_engine
from tally.database.store import RecordStore, SqlRecordStore
from tally.engine.awards import AwardPolicy, build_policy
from tally.engine.streaks import WeekCalendar
from tally.errors import ErrorCode, TallyError
from tally.identity import IdentityProvider, StaticIdentity, TokenIdentity
from tally.services.result import OpResult

T = TypeVar("T")

_WEAK_SECRETS = frozenset({
    "tally-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Process-wide resources
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> TallyConfig:
    return load_config(os.getenv("TALLY_CONFIG", "config.yaml"))


def get_store(engine: Annotated[Engine, Depends(get_engine)]) -> RecordStore:
    return SqlRecordStore(engine)


def get_policy(cfg: Annotated[TallyConfig, Depends(get_config)]) -> AwardPolicy:
    return build_policy(cfg)


def get_calendar(cfg: Annotated[TallyConfig, Depends(get_config)]) -> WeekCalendar:
    return WeekCalendar.from_config(cfg)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1]


def get_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> IdentityProvider:
    """The caller's identity.  Anonymous callers get an identity with no user id."""
    token = _bearer(authorization)
    if token is None:
        return StaticIdentity(None)
    return TokenIdentity(token, JWT_SECRET, JWT_ALGORITHM)


def get_current_admin(
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> str:
    """Return the admin's user id. Raises 401 without a valid token, 403 if not admin."""
    if not isinstance(identity, TokenIdentity):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    user_id = identity.current_user_id()
    if user_id is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not identity.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return user_id


# ---------------------------------------------------------------------------
# Result → HTTP
# ---------------------------------------------------------------------------
_STATUS_BY_KIND = {
    "validation": 422,
    "state_conflict": status.HTTP_409_CONFLICT,
    "authorization": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "backend_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_error(error: TallyError) -> NoReturn:
    if error.code == ErrorCode.UNAUTHENTICATED:
        code = status.HTTP_401_UNAUTHORIZED
    else:
        code = _STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(code, detail=error.to_dict())


def unwrap(result: OpResult[T]) -> T:
    """Return the operation's data or raise the matching HTTPException."""
    if result.error is not None:
        raise_for_error(result.error)
    return result.data
