"""Workspace membership checks.

Membership CRUD belongs to the workspace service.  The sync endpoints only
ask one question, *may this user touch this workspace?*, through the
:class:`MembershipChecker` interface so deployments can plug in their own
source of truth.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.auth.strategy import AuthenticatedUser
from cloudsync.models.models import WorkspaceMember


class MembershipChecker(ABC):
    @abstractmethod
    def is_member(self, db: Session, user: AuthenticatedUser, workspace_id: str) -> bool:  # noqa: D401 – abstract
        """Return True when *user* belongs to *workspace_id*."""


class AllowAllMembershipChecker(MembershipChecker):
    """Development mode: every authenticated caller is a member everywhere."""

    def is_member(self, db: Session, user: AuthenticatedUser, workspace_id: str) -> bool:  # noqa: D401 – impl
        return True


class DatabaseMembershipChecker(MembershipChecker):
    """Look the pair up in ``workspace_members``."""

    def is_member(self, db: Session, user: AuthenticatedUser, workspace_id: str) -> bool:  # noqa: D401 – impl
        stmt = select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user.user_id,
        )
        return db.execute(stmt).first() is not None


__all__ = ["MembershipChecker", "AllowAllMembershipChecker", "DatabaseMembershipChecker"]
