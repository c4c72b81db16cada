"""FastAPI dependencies that expose the *current user* and the workspace guard.

The heavy lifting (development bypass vs. JWT validation) is implemented in
strategy classes under :pymod:`cloudsync.auth.strategy`.  Which one runs is
decided by the module-level ``AUTH_DISABLED`` flag so request handlers remain
branch-free.
"""

from __future__ import annotations

from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from sqlalchemy.orm import Session

from cloudsync.auth.membership import AllowAllMembershipChecker
from cloudsync.auth.membership import DatabaseMembershipChecker
from cloudsync.auth.membership import MembershipChecker
from cloudsync.auth.strategy import AuthenticatedUser
from cloudsync.auth.strategy import DevAuthStrategy
from cloudsync.auth.strategy import JWTAuthStrategy
from cloudsync.auth.strategy import unauthorized
from cloudsync.config import get_settings
from cloudsync.models.enums import SyncErrorCode

_settings = get_settings()

# Tests patch this constant to toggle dev ↔ prod behaviour.
AUTH_DISABLED: bool = _settings.auth_disabled  # noqa: N816 – module flag


# ---------------------------------------------------------------------------
# Strategy selector – returns singleton per mode, toggles when flag patched.
# ---------------------------------------------------------------------------


_strategy_cache: dict[str, object] = {}


def _get_strategy():  # noqa: D401 – internal helper
    """Return *singleton* strategy instance based on ``AUTH_DISABLED`` flag."""

    if AUTH_DISABLED:
        if "dev" not in _strategy_cache:
            _strategy_cache["dev"] = DevAuthStrategy()
        return _strategy_cache["dev"]

    if "jwt" not in _strategy_cache:
        _strategy_cache["jwt"] = JWTAuthStrategy()
    return _strategy_cache["jwt"]


def get_membership_checker() -> MembershipChecker:
    if AUTH_DISABLED:
        return AllowAllMembershipChecker()
    return DatabaseMembershipChecker()


# ---------------------------------------------------------------------------
# Public dependencies
# ---------------------------------------------------------------------------


def get_current_user(request: Request) -> AuthenticatedUser:
    """Return the authenticated caller or raise **401**."""

    if "Authorization" not in request.headers and not AUTH_DISABLED:
        raise unauthorized("Not authenticated")
    return _get_strategy().get_current_user(request)


def require_workspace_member(db: Session, user: AuthenticatedUser, workspace_id: str) -> None:
    """Raise **403** unless *user* belongs to *workspace_id*.

    Called from handlers once the request body is parsed, since the
    workspace id travels in the body for most sync endpoints.
    """

    if not get_membership_checker().is_member(db, user, workspace_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Not a member of this workspace", "code": SyncErrorCode.FORBIDDEN.value},
        )


# ---------------------------------------------------------------------------
# WebSocket authentication helper
# ---------------------------------------------------------------------------


def validate_ws_token(token: str | None) -> AuthenticatedUser | None:
    """Return user for a valid WebSocket token – *None* when invalid."""

    return _get_strategy().validate_ws_token(token)


__all__ = [
    "AUTH_DISABLED",
    "get_current_user",
    "get_membership_checker",
    "require_workspace_member",
    "validate_ws_token",
]
