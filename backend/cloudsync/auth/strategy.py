"""Authentication strategy abstraction for the sync API.

Identity resolution and token issuance live in another service; the sync
backend only needs to turn a bearer token into a stable user id.  The concrete
strategy is decided once at startup:

• **DevAuthStrategy** when ``AUTH_DISABLED`` or ``TESTING`` is set.
• **JWTAuthStrategy** validating HS256 tokens otherwise.

Tests monkey-patch :pydata:`cloudsync.dependencies.auth.AUTH_DISABLED` to
switch between the two.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any
from typing import Optional

from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from jose import JWTError
from jose import jwt

from cloudsync.config import get_settings
from cloudsync.models.enums import SyncErrorCode


@dataclass(frozen=True)
class AuthenticatedUser:
    """The caller as far as the sync engine cares."""

    user_id: str
    email: Optional[str] = None


def unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": message, "code": SyncErrorCode.UNAUTHORIZED.value},
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# Strategy base-class
# ---------------------------------------------------------------------------


class AuthStrategy(ABC):
    """Pluggable authentication backend (strategy pattern)."""

    @abstractmethod
    def get_current_user(self, request: Request) -> AuthenticatedUser:  # noqa: D401 – abstract
        """Return the authenticated user or raise **401**."""

    @abstractmethod
    def validate_ws_token(self, token: str | None) -> AuthenticatedUser | None:  # noqa: D401 – abstract
        """Return user for valid token, *None* otherwise (WS handshake)."""


# ---------------------------------------------------------------------------
# Development-mode bypass
# ---------------------------------------------------------------------------


class DevAuthStrategy(AuthStrategy):
    """Bypass all checks – used when *AUTH_DISABLED* is true or in tests."""

    DEV_USER_ID = "dev-user"
    DEV_EMAIL = "dev@local"

    def _dev_user(self) -> AuthenticatedUser:
        return AuthenticatedUser(user_id=self.DEV_USER_ID, email=self.DEV_EMAIL)

    def get_current_user(self, request: Request) -> AuthenticatedUser:  # noqa: D401 – impl
        return self._dev_user()

    def validate_ws_token(self, token: str | None) -> AuthenticatedUser | None:  # noqa: D401 – impl
        return self._dev_user()


# ---------------------------------------------------------------------------
# HS256 JWT validation (production)
# ---------------------------------------------------------------------------


class JWTAuthStrategy(AuthStrategy):
    """Production strategy that validates HS256 tokens."""

    def __init__(self):
        self._secret = get_settings().jwt_secret

    # Internal ----------------------------------------------------------

    def _decode(self, token: str) -> dict[str, Any]:  # noqa: D401 – helper
        return jwt.decode(token, self._secret, algorithms=["HS256"])

    def _user_from_token(self, token: str) -> AuthenticatedUser | None:
        try:
            payload = self._decode(token)
        except JWTError:
            return None

        subject = payload.get("sub")
        if subject is None or str(subject).strip() == "":
            return None
        return AuthenticatedUser(user_id=str(subject), email=payload.get("email"))

    # Public API --------------------------------------------------------

    def get_current_user(self, request: Request) -> AuthenticatedUser:  # noqa: D401 – impl
        auth_header: str | None = request.headers.get("Authorization")
        if not auth_header or not auth_header.lower().startswith("bearer "):
            raise unauthorized("Missing bearer token")

        token = auth_header[7:].strip()
        if not token:
            raise unauthorized("Missing bearer token")

        user = self._user_from_token(token)
        if user is None:
            raise unauthorized("Invalid or expired token")
        return user

    def validate_ws_token(self, token: str | None) -> AuthenticatedUser | None:  # noqa: D401 – impl
        if not token:
            return None
        return self._user_from_token(token)


# Public re-exports ---------------------------------------------------------


__all__ = [
    "AuthenticatedUser",
    "AuthStrategy",
    "DevAuthStrategy",
    "JWTAuthStrategy",
    "unauthorized",
]
