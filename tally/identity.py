"""
tally.identity — Identity Providers
====================================

Every operation receives the caller's identity explicitly; there is no
process-wide "current user".  An identity provider answers one question:
who is acting right now?

* :class:`StaticIdentity` — a fixed user id (tests, scripts, admin tools).
* :class:`TokenIdentity` — the ``sub`` claim of a bearer JWT, decoded
  lazily with the deployment's ``JWT_SECRET``.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import jwt
from jwt.exceptions import InvalidTokenError

from tally.errors import AuthorizationError, ErrorCode

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityProvider(Protocol):
    def current_user_id(self) -> str | None:
        """Return the caller's stable user id, or ``None`` if anonymous."""
        ...


class StaticIdentity:
    """Identity fixed at construction time."""

    __slots__ = ("_user_id",)

    def __init__(self, user_id: str | None) -> None:
        self._user_id = user_id

    def current_user_id(self) -> str | None:
        return self._user_id

    def __repr__(self) -> str:
        return f"<StaticIdentity user={self._user_id!r}>"


class TokenIdentity:
    """Identity carried by a bearer JWT.

    An invalid or expired token resolves to ``None`` (anonymous) rather
    than raising, so the operation itself reports ``Unauthenticated``.
    """

    __slots__ = ("_token", "_secret", "_algorithm", "_claims")

    def __init__(self, token: str, secret: str, algorithm: str = "HS256") -> None:
        self._token = token
        self._secret = secret
        self._algorithm = algorithm
        self._claims: dict | None = None

    @property
    def claims(self) -> dict:
        if self._claims is None:
            try:
                self._claims = jwt.decode(
                    self._token, self._secret, algorithms=[self._algorithm]
                )
            except InvalidTokenError:
                logger.debug("Rejected bearer token", exc_info=True)
                self._claims = {}
        return self._claims

    def current_user_id(self) -> str | None:
        sub = self.claims.get("sub")
        return str(sub) if sub else None

    @property
    def is_admin(self) -> bool:
        return bool(self.claims.get("is_admin"))


def require_user(identity: IdentityProvider) -> str:
    """Resolve the acting user id or raise ``Unauthenticated``."""
    user_id = identity.current_user_id()
    if not user_id:
        raise AuthorizationError(ErrorCode.UNAUTHENTICATED)
    return user_id
