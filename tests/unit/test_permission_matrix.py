"""
Unit tests for the role permission matrix.
"""

import pytest

from projecthub.models.roles import ProjectRole
from projecthub.permissions.matrix import (
    ALL_CAPABILITIES,
    ROLE_PERMISSIONS,
    get_permissions,
    has_permission,
    is_pm_or_pc,
)

PM = ProjectRole.PROJECT_MANAGER
PC = ProjectRole.PROJECT_COORDINATOR
TM = ProjectRole.TEAM_MEMBER


@pytest.mark.parametrize("capability", [
    "delete_project", "manage_budget", "delegate_pm", "change_roles",
    "delete_tasks", "reopen_tasks", "delete_files",
])
def test_pm_only_capabilities(capability):
    assert has_permission(PM, capability)
    assert not has_permission(PC, capability)
    assert not has_permission(TM, capability)


@pytest.mark.parametrize("capability", [
    "invite_members", "remove_members", "create_tasks", "assign_tasks",
    "complete_tasks", "view_audit_log",
])
def test_manager_capabilities(capability):
    assert has_permission(PM, capability)
    assert has_permission(PC, capability)
    assert not has_permission(TM, capability)


@pytest.mark.parametrize("capability", ["view_project", "submit_for_review", "add_comments"])
def test_capabilities_shared_by_every_role(capability):
    for role in ProjectRole:
        assert has_permission(role, capability)


def test_pm_holds_every_capability():
    assert ROLE_PERMISSIONS[PM] == ALL_CAPABILITIES


def test_accepts_raw_role_strings():
    assert has_permission("project_manager", "delegate_pm")
    assert not has_permission("team_member", "invite_members")


@pytest.mark.parametrize("role", [None, "", "owner", "admin", 42])
def test_unknown_role_grants_nothing(role):
    assert has_permission(role, "view_project") is False
    assert get_permissions(role) == frozenset()


def test_unknown_capability_is_denied():
    assert has_permission(PM, "launch_rockets") is False


def test_is_pm_or_pc():
    assert is_pm_or_pc(PM)
    assert is_pm_or_pc("project_coordinator")
    assert not is_pm_or_pc(TM)
    assert not is_pm_or_pc("viewer")
    assert not is_pm_or_pc(None)
