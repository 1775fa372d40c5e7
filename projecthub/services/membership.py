"""
Membership Mutation Engine.

Add, remove, re-role and PM delegation for project members. Every
operation follows the same shape:

1. Resolve the actor's effective role (fresh read, no caching)
2. Permission and structural checks
3. One primary write (guarded against losing the last PM)
4. Audit entry and notifications, best-effort

Expected failures come back as ``OperationResult(success=False, ...)``.
"""

import logging
from datetime import datetime
from typing import Optional

from ..database.exceptions import DatabaseConstraintError
from ..database.repositories import (
    MemberRepository,
    UserRepository,
    WriteOutcome,
    get_member_repository,
    get_user_repository,
)
from ..models.audit import DelegationChange, MemberRoleChange
from ..models.results import MemberListResult, OperationResult
from ..models.roles import ProjectMembership, ProjectRole, format_role, parse_role
from ..utils.datetime_utils import to_aware_utc
from .base import WorkflowService, business_operation
from .errors import (
    AlreadyExistsError,
    InvariantViolationError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

PM = ProjectRole.PROJECT_MANAGER
PC = ProjectRole.PROJECT_COORDINATOR
TM = ProjectRole.TEAM_MEMBER

SAVE_FAILED = "Could not save the membership change. Please try again."
LAST_PM_ROLE_CHANGE = "Cannot change role: the project must have at least one Project Manager"
LAST_PM_REMOVAL = "Cannot remove the last Project Manager from a project"
STALE_MEMBER = "This member was changed by someone else. Reload and try again."


def _require_role(value) -> ProjectRole:
    role = parse_role(value)
    if role is None:
        raise InvariantViolationError(
            f'Unknown role "{value}". Expected one of: project_manager, project_coordinator, team_member'
        )
    return role


class MembershipService(WorkflowService):
    """Orchestrates membership changes for one project at a time."""

    def __init__(
        self,
        members: Optional[MemberRepository] = None,
        users: Optional[UserRepository] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.members = members or get_member_repository()
        self.users = users or get_user_repository()

    async def _get_member(self, project_id: str, user_id: str):
        member = await self.members.get(project_id, user_id)
        if member is None:
            raise NotFoundError("Member not found")
        return member

    async def _check_keeps_a_pm(self, project_id: str, member, new_role, message: str) -> None:
        """
        Early last-PM check so the rule is reported whoever the actor is.

        Only a precheck: the guarded write re-evaluates the count atomically.
        """
        if member is None or ProjectRole(member.role) != PM or new_role == PM:
            return
        if await self.members.count_by_role(project_id, PM) <= 1:
            raise InvariantViolationError(message)

    # ==================== ADD ====================

    @business_operation(OperationResult, SAVE_FAILED)
    async def add_member(
        self,
        project_id: str,
        actor_id: Optional[str],
        target_user_id: str,
        role=TM,
    ) -> OperationResult:
        """
        Add a user to a project.

        Requires invite_members. Project Coordinators may only add Team
        Members. The user must exist and must not already be a member.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        self._require(
            actor_role, "invite_members",
            f"Your role ({format_role(actor_role)}) cannot invite members. "
            f"Required: Project Manager or Project Coordinator",
        )

        role = _require_role(role)
        if actor_role == PC and role != TM:
            raise PermissionDeniedError("Project Coordinators can only invite Team Members")

        if not await self.users.exists(target_user_id):
            raise NotFoundError("User does not exist in the system")

        if await self.members.get(project_id, target_user_id) is not None:
            raise AlreadyExistsError("This user is already a member")

        try:
            await self.members.add(project_id, target_user_id, role, invited_by=actor_id)
        except DatabaseConstraintError:
            # Lost a race with a concurrent invite of the same user
            raise AlreadyExistsError("This user is already a member")

        await self._side_effect(
            self.audit.record_audit(project_id, actor_id, MemberRoleChange(new=role), target_user_id),
            f"audit-member-added-{project_id}-{target_user_id}",
        )
        await self._side_effect(
            self.notifications.member_added(project_id, actor_id, target_user_id, role),
            f"notify-member-added-{project_id}-{target_user_id}",
        )

        return OperationResult.ok(f"User added as {format_role(role)}")

    # ==================== CHANGE ROLE ====================

    @business_operation(OperationResult, SAVE_FAILED)
    async def change_member_role(
        self,
        project_id: str,
        actor_id: Optional[str],
        target_user_id: str,
        new_role,
    ) -> OperationResult:
        """
        Change a member's role. Project Managers only.

        Demoting a PM is refused unless another PM remains; the check and
        the write are one guarded statement.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        new_role = _require_role(new_role)
        member = await self.members.get(project_id, target_user_id)
        await self._check_keeps_a_pm(project_id, member, new_role, LAST_PM_ROLE_CHANGE)

        self._require(actor_role, "change_roles", "Only Project Managers can change roles")
        if member is None:
            raise NotFoundError("Member not found")
        old_role = ProjectRole(member.role)

        # Re-saving the current role still counts as a role change and is audited
        outcome = await self.members.change_role(project_id, target_user_id, old_role, new_role)
        if outcome == WriteOutcome.LAST_PM:
            raise InvariantViolationError(LAST_PM_ROLE_CHANGE)
        if outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError("Member not found")
        if outcome != WriteOutcome.APPLIED:
            raise InvariantViolationError(STALE_MEMBER)

        await self._side_effect(
            self.audit.record_audit(
                project_id, actor_id, MemberRoleChange(old=old_role, new=new_role), target_user_id
            ),
            f"audit-role-changed-{project_id}-{target_user_id}",
        )
        await self._side_effect(
            self.notifications.role_changed(project_id, actor_id, target_user_id, new_role),
            f"notify-role-changed-{project_id}-{target_user_id}",
        )

        return OperationResult.ok(f"Role changed to {format_role(new_role)}")

    # ==================== REMOVE ====================

    @business_operation(OperationResult, SAVE_FAILED)
    async def remove_member(
        self,
        project_id: str,
        actor_id: Optional[str],
        target_user_id: str,
    ) -> OperationResult:
        """
        Remove a member from a project.

        Anyone may leave. Otherwise requires remove_members, and a Project
        Coordinator may only remove Team Members. The last PM cannot be
        removed by anyone, themselves included.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        is_self = actor_id == target_user_id

        member = await self.members.get(project_id, target_user_id)
        await self._check_keeps_a_pm(project_id, member, None, LAST_PM_REMOVAL)

        if not is_self:
            self._require(
                actor_role, "remove_members",
                "You do not have permission to remove members. "
                "Required: Project Manager or Project Coordinator",
            )

        if member is None:
            raise NotFoundError("Member not found")
        target_role = ProjectRole(member.role)

        if not is_self and actor_role == PC:
            if target_role == PM:
                raise PermissionDeniedError("Project Coordinators cannot remove a Project Manager")
            if target_role != TM:
                raise PermissionDeniedError("Project Coordinators can only remove Team Members")

        outcome = await self.members.remove(project_id, target_user_id, target_role)
        if outcome == WriteOutcome.LAST_PM:
            raise InvariantViolationError(LAST_PM_REMOVAL)
        if outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError("Member not found")
        if outcome != WriteOutcome.APPLIED:
            raise InvariantViolationError(STALE_MEMBER)

        await self._side_effect(
            self.audit.record_audit(project_id, actor_id, MemberRoleChange(old=target_role), target_user_id),
            f"audit-member-removed-{project_id}-{target_user_id}",
        )
        await self._side_effect(
            self.notifications.member_removed(project_id, actor_id, target_user_id),
            f"notify-member-removed-{project_id}-{target_user_id}",
        )

        return OperationResult.ok("Member removed from project")

    # ==================== DELEGATION ====================

    @business_operation(OperationResult, SAVE_FAILED)
    async def delegate_pm_rights(
        self,
        project_id: str,
        actor_id: Optional[str],
        coordinator_id: str,
        expires_at: Optional[datetime],
    ) -> OperationResult:
        """
        Give a Project Coordinator PM authority until ``expires_at``.

        An expiry in the past is stored as-is and simply never takes effect.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        self._require(actor_role, "delegate_pm", "Only a Project Manager can delegate PM rights")

        if expires_at is None:
            raise InvariantViolationError("An expiry time is required to delegate PM rights")
        if coordinator_id == actor_id:
            raise PermissionDeniedError("You cannot delegate PM rights to yourself")

        expires_at = to_aware_utc(expires_at)
        member = await self._get_member(project_id, coordinator_id)
        if ProjectRole(member.role) != PC:
            raise InvariantViolationError(
                "PM rights can only be delegated to a Project Coordinator"
            )
        previous = member.delegated_pm_until

        outcome = await self.members.set_delegation(project_id, coordinator_id, expires_at)
        if outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError("Member not found")
        if outcome != WriteOutcome.APPLIED:
            raise InvariantViolationError(
                "PM rights can only be delegated to a Project Coordinator"
            )

        await self._side_effect(
            self.audit.record_audit(
                project_id, actor_id, DelegationChange(old=previous, new=expires_at), coordinator_id
            ),
            f"audit-pm-delegation-{project_id}-{coordinator_id}",
        )
        await self._side_effect(
            self.notifications.pm_delegated(project_id, actor_id, coordinator_id, expires_at),
            f"notify-pm-delegation-{project_id}-{coordinator_id}",
        )

        return OperationResult.ok("PM rights delegated successfully")

    @business_operation(OperationResult, SAVE_FAILED)
    async def revoke_pm_delegation(
        self,
        project_id: str,
        actor_id: Optional[str],
        coordinator_id: str,
    ) -> OperationResult:
        """Clear any PM delegation held by a coordinator."""
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        self._require(actor_role, "delegate_pm", "Only a Project Manager can revoke delegation")

        member = await self._get_member(project_id, coordinator_id)
        previous = member.delegated_pm_until

        outcome = await self.members.set_delegation(project_id, coordinator_id, None)
        if outcome == WriteOutcome.NOT_FOUND:
            raise NotFoundError("Member not found")

        await self._side_effect(
            self.audit.record_audit(
                project_id, actor_id, DelegationChange(old=previous, new=None), coordinator_id
            ),
            f"audit-pm-delegation-revoked-{project_id}-{coordinator_id}",
        )
        await self._side_effect(
            self.notifications.pm_delegation_revoked(project_id, actor_id, coordinator_id),
            f"notify-pm-delegation-revoked-{project_id}-{coordinator_id}",
        )

        return OperationResult.ok("PM delegation revoked")

    # ==================== LIST ====================

    @business_operation(MemberListResult, "Could not load project members. Please try again.")
    async def list_members(
        self,
        project_id: str,
        actor_id: Optional[str],
    ) -> MemberListResult:
        """Project memberships, oldest first. Any member may look."""
        actor_role = await self._resolve_actor(project_id, actor_id, self.clock())
        self._require(actor_role, "view_project")

        rows = await self.members.list_by_project(project_id)
        members = [ProjectMembership.model_validate(row) for row in rows]
        return MemberListResult.ok(f"{len(members)} members", members=members)
