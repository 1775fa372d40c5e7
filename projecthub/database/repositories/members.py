"""
Project membership repository.

Handles:
- Membership lookup and listing
- Adding members
- Role changes, removals and PM delegation

Every write that can reduce the number of Project Managers runs as one
guarded statement inside a transaction that first locks the project row
(SELECT ... FOR UPDATE on PostgreSQL). The guard counts the project's PM
rows in the same statement, so two concurrent demotions are serialized
and the second one sees the first one's result.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..connection import get_database
from ..models import ProjectDB, ProjectMemberDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ...models.roles import ProjectRole
from ...utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

PM = ProjectRole.PROJECT_MANAGER.value
PC = ProjectRole.PROJECT_COORDINATOR.value


class WriteOutcome(str, Enum):
    """Result of a guarded membership write."""
    APPLIED = "applied"
    NOT_FOUND = "not_found"    # Membership row no longer exists
    LAST_PM = "last_pm"        # Would leave the project without a Project Manager
    STALE = "stale"            # Stored role differs from the one the caller checked
    WRONG_ROLE = "wrong_role"  # Delegation target is not a Project Coordinator


def _pm_count(project_id: str):
    """Scalar subquery counting the project's PM rows, evaluated inside the write."""
    counted = aliased(ProjectMemberDB, name="pm_count")
    return (
        select(func.count(counted.id))
        .where(counted.project_id == project_id, counted.role == PM)
        .scalar_subquery()
    )


def _keeps_a_pm(project_id: str, current_role: str, new_role: Optional[str]):
    """Guard clause: demoting or removing a PM requires another PM to remain."""
    if current_role != PM or new_role == PM:
        return None
    return _pm_count(project_id) >= 2


class MemberRepository:
    """Repository for project membership operations."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def get(self, project_id: str, user_id: str) -> Optional[ProjectMemberDB]:
        """Get one user's membership in a project."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectMemberDB).where(
                        ProjectMemberDB.project_id == project_id,
                        ProjectMemberDB.user_id == user_id,
                    )
                )
                return result.scalar_one_or_none()
            except Exception as e:
                logger.error(f"Error fetching membership {project_id}/{user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to fetch membership for {user_id}") from e

    async def list_by_project(self, project_id: str) -> List[ProjectMemberDB]:
        """All memberships of a project, oldest first."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectMemberDB)
                    .where(ProjectMemberDB.project_id == project_id)
                    .order_by(ProjectMemberDB.joined_at, ProjectMemberDB.id)
                )
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error listing members of {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to list members of project {project_id}") from e

    async def list_user_ids_by_roles(
        self,
        project_id: str,
        roles: Iterable[ProjectRole],
    ) -> List[str]:
        """User IDs holding any of ``roles`` in a project."""
        role_values = [ProjectRole(r).value for r in roles]
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectMemberDB.user_id)
                    .where(
                        ProjectMemberDB.project_id == project_id,
                        ProjectMemberDB.role.in_(role_values),
                    )
                    .order_by(ProjectMemberDB.joined_at, ProjectMemberDB.id)
                )
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error listing {role_values} of {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to list members of project {project_id}") from e

    async def count_by_role(self, project_id: str, role: ProjectRole) -> int:
        """Number of memberships with ``role`` in a project."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(func.count(ProjectMemberDB.id)).where(
                        ProjectMemberDB.project_id == project_id,
                        ProjectMemberDB.role == ProjectRole(role).value,
                    )
                )
                return result.scalar() or 0
            except Exception as e:
                logger.error(f"Error counting {role} members of {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to count members of project {project_id}") from e

    async def add(
        self,
        project_id: str,
        user_id: str,
        role: ProjectRole,
        invited_by: Optional[str] = None,
    ) -> ProjectMemberDB:
        """
        Insert a membership.

        Raises:
            DatabaseConstraintError: the user is already a member (or the role is invalid)
            DatabaseOperationError: any other failure
        """
        async with self.db.session() as session:
            try:
                member = ProjectMemberDB(
                    project_id=project_id,
                    user_id=user_id,
                    role=ProjectRole(role).value,
                    invited_by=invited_by,
                    joined_at=utc_now(),
                )
                session.add(member)
                await session.flush()

                logger.info(f"Added {user_id} to project {project_id} as {member.role}")
                return member

            except IntegrityError as e:
                logger.warning(f"Constraint violation adding {user_id} to {project_id}: {e}")
                raise DatabaseConstraintError(f"{user_id} is already a member of {project_id}") from e

            except Exception as e:
                logger.error(f"CRITICAL: Adding member {user_id} to {project_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to add {user_id} to project {project_id}") from e

    # ==================== GUARDED WRITES ====================

    async def _lock_project(self, session: AsyncSession, project_id: str) -> None:
        """Serialize membership writes per project (no-op on SQLite)."""
        await session.execute(
            select(ProjectDB.id).where(ProjectDB.id == project_id).with_for_update()
        )

    async def _explain_miss(
        self,
        session: AsyncSession,
        project_id: str,
        user_id: str,
        expected_role: str,
    ) -> WriteOutcome:
        """Work out why a guarded write matched no row."""
        result = await session.execute(
            select(ProjectMemberDB.role).where(
                ProjectMemberDB.project_id == project_id,
                ProjectMemberDB.user_id == user_id,
            )
        )
        stored_role = result.scalar_one_or_none()
        if stored_role is None:
            return WriteOutcome.NOT_FOUND
        if stored_role != expected_role:
            return WriteOutcome.STALE
        return WriteOutcome.LAST_PM

    async def change_role(
        self,
        project_id: str,
        user_id: str,
        expected_role: ProjectRole,
        new_role: ProjectRole,
    ) -> WriteOutcome:
        """
        Change a member's role if it is still ``expected_role``.

        Demoting a PM only applies while another PM remains. Moving a member
        away from coordinator clears any PM delegation in the same write.
        """
        expected = ProjectRole(expected_role).value
        target = ProjectRole(new_role).value

        conditions = [
            ProjectMemberDB.project_id == project_id,
            ProjectMemberDB.user_id == user_id,
            ProjectMemberDB.role == expected,
        ]
        guard = _keeps_a_pm(project_id, expected, target)
        if guard is not None:
            conditions.append(guard)

        values = {"role": target}
        if target != PC:
            values["delegated_pm_until"] = None

        async with self.db.session() as session:
            try:
                await self._lock_project(session, project_id)
                result = await session.execute(
                    update(ProjectMemberDB)
                    .where(and_(*conditions))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    logger.info(f"Role of {user_id} in {project_id} changed: {expected} -> {target}")
                    return WriteOutcome.APPLIED

                outcome = await self._explain_miss(session, project_id, user_id, expected)
                logger.info(f"Role change for {user_id} in {project_id} not applied: {outcome.value}")
                return outcome

            except IntegrityError as e:
                logger.error(f"Constraint violation changing role of {user_id}: {e}")
                raise DatabaseConstraintError(f"Cannot set role {target} for {user_id}") from e

            except Exception as e:
                logger.error(f"CRITICAL: Role change failed for {user_id} in {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to change role of {user_id}") from e

    async def remove(
        self,
        project_id: str,
        user_id: str,
        expected_role: ProjectRole,
    ) -> WriteOutcome:
        """Delete a membership if its role is still ``expected_role``, never the last PM."""
        expected = ProjectRole(expected_role).value

        conditions = [
            ProjectMemberDB.project_id == project_id,
            ProjectMemberDB.user_id == user_id,
            ProjectMemberDB.role == expected,
        ]
        guard = _keeps_a_pm(project_id, expected, None)
        if guard is not None:
            conditions.append(guard)

        async with self.db.session() as session:
            try:
                await self._lock_project(session, project_id)
                result = await session.execute(
                    delete(ProjectMemberDB)
                    .where(and_(*conditions))
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    logger.info(f"Removed {user_id} ({expected}) from project {project_id}")
                    return WriteOutcome.APPLIED

                outcome = await self._explain_miss(session, project_id, user_id, expected)
                logger.info(f"Removal of {user_id} from {project_id} not applied: {outcome.value}")
                return outcome

            except Exception as e:
                logger.error(f"CRITICAL: Removing {user_id} from {project_id} failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to remove {user_id} from project {project_id}") from e

    async def set_delegation(
        self,
        project_id: str,
        user_id: str,
        until: Optional[datetime],
    ) -> WriteOutcome:
        """
        Set or clear ``delegated_pm_until``.

        Setting a grant only applies to rows whose stored role is coordinator.
        Clearing applies to any row.
        """
        conditions = [
            ProjectMemberDB.project_id == project_id,
            ProjectMemberDB.user_id == user_id,
        ]
        if until is not None:
            conditions.append(ProjectMemberDB.role == PC)

        async with self.db.session() as session:
            try:
                result = await session.execute(
                    update(ProjectMemberDB)
                    .where(and_(*conditions))
                    .values(delegated_pm_until=until)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    logger.info(f"PM delegation of {user_id} in {project_id} set to {until}")
                    return WriteOutcome.APPLIED

                exists = await session.execute(
                    select(ProjectMemberDB.id).where(
                        ProjectMemberDB.project_id == project_id,
                        ProjectMemberDB.user_id == user_id,
                    )
                )
                if exists.scalar_one_or_none() is None:
                    return WriteOutcome.NOT_FOUND
                return WriteOutcome.WRONG_ROLE

            except Exception as e:
                logger.error(f"CRITICAL: Delegation update failed for {user_id} in {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update delegation of {user_id}") from e


# Singleton
_member_repository: Optional[MemberRepository] = None


def get_member_repository() -> MemberRepository:
    """Get the member repository singleton."""
    global _member_repository
    if _member_repository is None:
        _member_repository = MemberRepository()
    return _member_repository
