"""
Effective role resolution.

A member's effective role is their stored role, except that a Project
Coordinator holding an unexpired PM delegation acts as a Project Manager.
Expiry is evaluated at read time against ``now``; nothing sweeps stale
grants. Project creators without a membership row fall back to PM.
"""

import logging
from datetime import datetime
from typing import Optional

from ..models.roles import ProjectMembership, ProjectRole, parse_role
from ..utils.datetime_utils import to_aware_utc, utc_now
from .matrix import has_permission

logger = logging.getLogger(__name__)


def effective_role(membership: Optional[ProjectMembership], now: datetime) -> Optional[ProjectRole]:
    """Effective role of an already-loaded membership at ``now``."""
    if membership is None:
        return None

    role = parse_role(membership.role)
    if role == ProjectRole.PROJECT_COORDINATOR and membership.delegated_pm_until is not None:
        if to_aware_utc(membership.delegated_pm_until) > to_aware_utc(now):
            return ProjectRole.PROJECT_MANAGER

    return role


class EffectiveRoleResolver:
    """Resolves who a user is, authorization-wise, inside a project."""

    def __init__(self, members=None, projects=None):
        from ..database.repositories import get_member_repository, get_project_repository

        self.members = members if members is not None else get_member_repository()
        self.projects = projects if projects is not None else get_project_repository()

    async def resolve(
        self,
        project_id: str,
        user_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> Optional[ProjectRole]:
        """
        Resolve a user's effective role.

        Returns None when the user is not a member of the project and is not
        its creator. The membership is re-read on every call.
        """
        if not user_id:
            return None

        now = now or utc_now()
        membership = await self.members.get(project_id, user_id)
        if membership is not None:
            return effective_role(membership, now)

        project = await self.projects.get(project_id)
        if project is not None and project.created_by == user_id:
            logger.debug(f"Ownership fallback: {user_id} is creator of project {project_id}")
            return ProjectRole.PROJECT_MANAGER

        return None

    async def can_user_do(
        self,
        project_id: str,
        user_id: Optional[str],
        capability: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Resolve the user's role and check it against the permission matrix."""
        role = await self.resolve(project_id, user_id, now)
        return role is not None and has_permission(role, capability)


async def resolve_effective_role(
    project_id: str,
    user_id: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[ProjectRole]:
    """Resolve against the default database."""
    return await EffectiveRoleResolver().resolve(project_id, user_id, now)
