"""
Tests for MembershipService against a real SQLite database.

Covers permissions, the last-PM rule, delegation, audit entries and
notification side effects.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from projecthub.database.exceptions import DatabaseOperationError
from projecthub.models.results import ErrorKind
from projecthub.models.roles import ProjectRole
from projecthub.utils.background_tasks import wait_for_background_tasks
from projecthub.utils.datetime_utils import utc_now

PM = ProjectRole.PROJECT_MANAGER
PC = ProjectRole.PROJECT_COORDINATOR
TM = ProjectRole.TEAM_MEMBER


async def audit_rows(workflow):
    return await workflow.audit_repo.list_by_project("p1", limit=100)


async def notifications_for(workflow, user_id):
    return await workflow.notification_repo.list_for_user(user_id)


# ============================================================
# ADD MEMBER
# ============================================================

class TestAddMember:

    @pytest.mark.asyncio
    async def test_pm_adds_member(self, workflow, project):
        result = await workflow.membership.add_member("p1", "alice", "nina", "project_coordinator")

        assert result.success is True
        assert result.message == "User added as Project Coordinator"
        member = await workflow.members.get("p1", "nina")
        assert member.role == "project_coordinator"
        assert member.invited_by == "alice"

    @pytest.mark.asyncio
    async def test_add_writes_one_audit_entry(self, workflow, project):
        await workflow.membership.add_member("p1", "alice", "nina", "team_member")

        rows = await audit_rows(workflow)
        assert len(rows) == 1
        assert rows[0].action == "member_added"
        assert rows[0].entity_type == "member"
        assert rows[0].entity_id == "nina"
        assert rows[0].user_id == "alice"
        assert rows[0].old_value is None
        assert rows[0].new_value == {"role": "team_member"}

    @pytest.mark.asyncio
    async def test_add_notifies_new_member(self, workflow, project):
        await workflow.membership.add_member("p1", "alice", "nina", "team_member")

        notes = await notifications_for(workflow, "nina")
        assert len(notes) == 1
        assert notes[0].notification_type == "member_added"
        assert notes[0].title == "Added to project: Apollo"
        assert notes[0].message == "You have been added as Team Member."
        assert notes[0].entity_type == "project"
        assert notes[0].entity_id == "p1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["project_manager", "project_coordinator"])
    async def test_pc_cannot_grant_above_team_member(self, workflow, project, role):
        result = await workflow.membership.add_member("p1", "carol", "nina", role)

        assert result.success is False
        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "Project Coordinators can only invite Team Members"
        assert await workflow.members.get("p1", "nina") is None
        assert await audit_rows(workflow) == []

    @pytest.mark.asyncio
    async def test_pc_can_add_team_member(self, workflow, project):
        result = await workflow.membership.add_member("p1", "carol", "nina", "team_member")

        assert result.success is True
        assert result.message == "User added as Team Member"

    @pytest.mark.asyncio
    async def test_team_member_cannot_invite(self, workflow, project):
        result = await workflow.membership.add_member("p1", "tom", "nina")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert "Team Member" in result.message

    @pytest.mark.asyncio
    async def test_non_member_cannot_invite(self, workflow, project):
        result = await workflow.membership.add_member("p1", "nina", "tom")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "You are not a member of this project"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("actor", [None, ""])
    async def test_requires_actor(self, workflow, project, actor):
        result = await workflow.membership.add_member("p1", actor, "nina")

        assert result.error == ErrorKind.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_unknown_user(self, workflow, project):
        result = await workflow.membership.add_member("p1", "alice", "ghost")

        assert result.error == ErrorKind.NOT_FOUND
        assert result.message == "User does not exist in the system"

    @pytest.mark.asyncio
    async def test_duplicate_membership(self, workflow, project):
        result = await workflow.membership.add_member("p1", "alice", "tom")

        assert result.error == ErrorKind.ALREADY_EXISTS
        assert result.message == "This user is already a member"

    @pytest.mark.asyncio
    async def test_duplicate_detected_by_constraint(self, workflow, project, monkeypatch):
        # Simulates a concurrent invite landing between the check and the insert
        monkeypatch.setattr(workflow.members, "get", AsyncMock(return_value=None))

        result = await workflow.membership.add_member("p1", "alice", "tom")

        assert result.error == ErrorKind.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_unknown_role(self, workflow, project):
        result = await workflow.membership.add_member("p1", "alice", "nina", "owner")

        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert 'Unknown role "owner"' in result.message

    @pytest.mark.asyncio
    async def test_primary_write_failure_is_infrastructure(self, workflow, project, monkeypatch):
        monkeypatch.setattr(
            workflow.members, "add", AsyncMock(side_effect=DatabaseOperationError("connection reset"))
        )

        result = await workflow.membership.add_member("p1", "alice", "nina")

        assert result.success is False
        assert result.error == ErrorKind.INFRASTRUCTURE
        assert "try again" in result.message
        assert await audit_rows(workflow) == []


# ============================================================
# CHANGE ROLE
# ============================================================

class TestChangeMemberRole:

    @pytest.mark.asyncio
    async def test_sole_pm_cannot_demote_self(self, workflow, project):
        result = await workflow.membership.change_member_role("p1", "alice", "alice", "team_member")

        assert result.success is False
        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert "the project must have at least one Project Manager" in result.message
        assert (await workflow.members.get("p1", "alice")).role == "project_manager"
        assert await audit_rows(workflow) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("actor", ["carol", "tom"])
    async def test_sole_pm_demotion_is_invariant_for_any_actor(self, workflow, project, actor):
        result = await workflow.membership.change_member_role("p1", actor, "alice", "team_member")

        assert result.error == ErrorKind.INVARIANT_VIOLATION

    @pytest.mark.asyncio
    async def test_pm_promotes_member(self, workflow, project):
        result = await workflow.membership.change_member_role("p1", "alice", "tom", "project_coordinator")

        assert result.success is True
        assert result.message == "Role changed to Project Coordinator"
        assert (await workflow.members.get("p1", "tom")).role == "project_coordinator"

        rows = await audit_rows(workflow)
        assert len(rows) == 1
        assert rows[0].action == "role_changed"
        assert rows[0].old_value == {"role": "team_member"}
        assert rows[0].new_value == {"role": "project_coordinator"}

        notes = await notifications_for(workflow, "tom")
        assert [n.notification_type for n in notes] == ["role_changed"]
        assert notes[0].message == 'Your role in "Apollo" is now Project Coordinator.'

    @pytest.mark.asyncio
    async def test_demote_pm_when_another_remains(self, workflow, project):
        await workflow.membership.change_member_role("p1", "alice", "carol", "project_manager")

        result = await workflow.membership.change_member_role("p1", "alice", "alice", "team_member")

        assert result.success is True
        assert await workflow.members.count_by_role("p1", PM) == 1

    @pytest.mark.asyncio
    async def test_only_pm_can_change_roles(self, workflow, project):
        result = await workflow.membership.change_member_role("p1", "carol", "tom", "project_coordinator")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "Only Project Managers can change roles"

    @pytest.mark.asyncio
    async def test_delegated_coordinator_can_change_roles(self, workflow, project):
        await workflow.members.set_delegation("p1", "carol", utc_now() + timedelta(hours=1))

        result = await workflow.membership.change_member_role("p1", "carol", "tom", "project_coordinator")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_missing_member(self, workflow, project):
        result = await workflow.membership.change_member_role("p1", "alice", "nina", "team_member")

        assert result.error == ErrorKind.NOT_FOUND
        assert result.message == "Member not found"

    @pytest.mark.asyncio
    async def test_same_role_is_audited_once(self, workflow, project):
        result = await workflow.membership.change_member_role("p1", "alice", "tom", "team_member")

        assert result.success is True
        assert result.message == "Role changed to Team Member"
        rows = await audit_rows(workflow)
        assert len(rows) == 1
        assert rows[0].action == "role_changed"
        assert rows[0].old_value == {"role": "team_member"}
        assert rows[0].new_value == {"role": "team_member"}
        assert (await workflow.members.get("p1", "tom")).role == TM.value

    @pytest.mark.asyncio
    async def test_leaving_coordinator_clears_delegation(self, workflow, project):
        await workflow.members.set_delegation("p1", "carol", utc_now() + timedelta(days=1))

        result = await workflow.membership.change_member_role("p1", "alice", "carol", "team_member")

        assert result.success is True
        member = await workflow.members.get("p1", "carol")
        assert member.delegated_pm_until is None
        assert await workflow.resolver.resolve("p1", "carol") == TM


# ============================================================
# REMOVE MEMBER
# ============================================================

class TestRemoveMember:

    @pytest.mark.asyncio
    async def test_member_can_leave(self, workflow, project):
        result = await workflow.membership.remove_member("p1", "tom", "tom")

        assert result.success is True
        assert result.message == "Member removed from project"
        assert await workflow.members.get("p1", "tom") is None

        rows = await audit_rows(workflow)
        assert len(rows) == 1
        assert rows[0].action == "member_removed"
        assert rows[0].old_value == {"role": "team_member"}
        assert rows[0].new_value is None
        # No notice for your own departure
        assert await notifications_for(workflow, "tom") == []

    @pytest.mark.asyncio
    async def test_sole_pm_cannot_leave(self, workflow, project):
        result = await workflow.membership.remove_member("p1", "alice", "alice")

        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert result.message == "Cannot remove the last Project Manager from a project"

    @pytest.mark.asyncio
    async def test_pc_removes_team_member(self, workflow, project):
        result = await workflow.membership.remove_member("p1", "carol", "tom")

        assert result.success is True
        notes = await notifications_for(workflow, "tom")
        assert [n.notification_type for n in notes] == ["member_removed"]

    @pytest.mark.asyncio
    async def test_pc_cannot_remove_pm(self, workflow, project):
        await workflow.members.add("p1", "nina", PM)

        result = await workflow.membership.remove_member("p1", "carol", "nina")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "Project Coordinators cannot remove a Project Manager"

    @pytest.mark.asyncio
    async def test_pc_cannot_remove_pc(self, workflow, project):
        await workflow.members.add("p1", "nina", PC)

        result = await workflow.membership.remove_member("p1", "carol", "nina")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "Project Coordinators can only remove Team Members"

    @pytest.mark.asyncio
    async def test_team_member_cannot_remove_others(self, workflow, project):
        result = await workflow.membership.remove_member("p1", "tom", "carol")

        assert result.error == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_missing_member(self, workflow, project):
        result = await workflow.membership.remove_member("p1", "alice", "nina")

        assert result.error == ErrorKind.NOT_FOUND


# ============================================================
# DELEGATION
# ============================================================

class TestDelegation:

    @pytest.mark.asyncio
    async def test_delegate_and_revoke(self, workflow, project):
        expires = utc_now() + timedelta(hours=4)

        result = await workflow.membership.delegate_pm_rights("p1", "alice", "carol", expires)

        assert result.success is True
        assert result.message == "PM rights delegated successfully"
        assert await workflow.resolver.resolve("p1", "carol") == PM

        result = await workflow.membership.revoke_pm_delegation("p1", "alice", "carol")

        assert result.success is True
        assert result.message == "PM delegation revoked"
        assert await workflow.resolver.resolve("p1", "carol") == PC

        rows = await audit_rows(workflow)
        assert [r.action for r in rows] == ["pm_delegation_revoked", "pm_delegation"]
        assert rows[0].new_value == {"delegated_pm_until": None}

        notes = await notifications_for(workflow, "carol")
        assert {n.notification_type for n in notes} == {"pm_delegated", "pm_delegation_revoked"}

    @pytest.mark.asyncio
    async def test_past_expiry_is_accepted_but_inactive(self, workflow, project):
        result = await workflow.membership.delegate_pm_rights(
            "p1", "alice", "carol", utc_now() - timedelta(hours=1)
        )

        assert result.success is True
        assert await workflow.resolver.resolve("p1", "carol") == PC

    @pytest.mark.asyncio
    async def test_only_pm_can_delegate(self, workflow, project):
        result = await workflow.membership.delegate_pm_rights(
            "p1", "carol", "carol", utc_now() + timedelta(hours=1)
        )

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.message == "Only a Project Manager can delegate PM rights"

    @pytest.mark.asyncio
    async def test_target_must_be_coordinator(self, workflow, project):
        result = await workflow.membership.delegate_pm_rights(
            "p1", "alice", "tom", utc_now() + timedelta(hours=1)
        )

        assert result.error == ErrorKind.INVARIANT_VIOLATION
        assert (await workflow.members.get("p1", "tom")).delegated_pm_until is None

    @pytest.mark.asyncio
    async def test_cannot_delegate_to_self(self, workflow, project):
        await workflow.members.set_delegation("p1", "carol", utc_now() + timedelta(hours=1))

        result = await workflow.membership.delegate_pm_rights(
            "p1", "carol", "carol", utc_now() + timedelta(days=30)
        )

        assert result.error == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_expiry_required(self, workflow, project):
        result = await workflow.membership.delegate_pm_rights("p1", "alice", "carol", None)

        assert result.error == ErrorKind.INVARIANT_VIOLATION

    @pytest.mark.asyncio
    async def test_revoke_requires_pm(self, workflow, project):
        result = await workflow.membership.revoke_pm_delegation("p1", "tom", "carol")

        assert result.error == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_revoke_missing_member(self, workflow, project):
        result = await workflow.membership.revoke_pm_delegation("p1", "alice", "nina")

        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delegation_evaluated_against_service_clock(self, workflow_factory, project):
        expires = utc_now() + timedelta(hours=1)
        later = workflow_factory(clock=lambda: expires + timedelta(hours=1))
        await later.members.set_delegation("p1", "carol", expires)

        result = await later.membership.change_member_role("p1", "carol", "tom", "project_coordinator")

        assert result.error == ErrorKind.PERMISSION_DENIED


# ============================================================
# LISTING AND SIDE-EFFECT ISOLATION
# ============================================================

class TestListMembers:

    @pytest.mark.asyncio
    async def test_member_can_list(self, workflow, project):
        result = await workflow.membership.list_members("p1", "tom")

        assert result.success is True
        assert [m.user_id for m in result.members] == ["alice", "carol", "tom"]
        assert result.members[0].role == PM

    @pytest.mark.asyncio
    async def test_non_member_cannot_list(self, workflow, project):
        result = await workflow.membership.list_members("p1", "nina")

        assert result.error == ErrorKind.PERMISSION_DENIED
        assert result.members == []


class TestSideEffectIsolation:

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_mutation(self, workflow, project, monkeypatch):
        monkeypatch.setattr(
            workflow.audit_repo, "insert", AsyncMock(side_effect=DatabaseOperationError("disk full"))
        )

        result = await workflow.membership.add_member("p1", "alice", "nina")

        assert result.success is True
        assert await workflow.members.get("p1", "nina") is not None

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_mutation(self, workflow, project, monkeypatch):
        monkeypatch.setattr(
            workflow.notification_repo, "insert_many", AsyncMock(side_effect=RuntimeError("queue down"))
        )

        result = await workflow.membership.change_member_role("p1", "alice", "tom", "project_coordinator")

        assert result.success is True
        assert len(await audit_rows(workflow)) == 1

    @pytest.mark.asyncio
    async def test_background_side_effects(self, workflow_factory, project):
        background = workflow_factory(await_side_effects=False)

        result = await background.membership.add_member("p1", "alice", "nina")
        await wait_for_background_tasks(timeout=5)

        assert result.success is True
        assert len(await audit_rows(background)) == 1
        assert len(await notifications_for(background, "nina")) == 1
