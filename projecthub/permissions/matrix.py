"""
Role permission matrix.

Static mapping of each project role to the capabilities it grants.
Capabilities are set-based: a Project Coordinator can invite and remove
members but cannot delete tasks or touch the budget, and so on. Lookups
are pure and independent of time; delegation is handled by the resolver.

The services enforce the membership capabilities plus create_tasks,
assign_tasks and view_audit_log; status changes go through the transition
table. The remaining capabilities (editing or deleting tasks, files,
budget, timetable, comments) guard surfaces outside this library, whose
callers check them with ``has_permission`` or
``EffectiveRoleResolver.can_user_do``.
"""

from typing import Dict, FrozenSet

from ..models.roles import ProjectRole, parse_role

PM = ProjectRole.PROJECT_MANAGER
PC = ProjectRole.PROJECT_COORDINATOR
TM = ProjectRole.TEAM_MEMBER


ROLE_PERMISSIONS: Dict[ProjectRole, FrozenSet[str]] = {
    PM: frozenset({
        # Project
        "view_project",
        "edit_project",
        "delete_project",
        "manage_budget",
        "manage_timetable",
        "view_audit_log",
        "delegate_pm",
        # Files
        "upload_files",
        "delete_files",
        # Tasks
        "create_tasks",
        "edit_tasks",
        "assign_tasks",
        "delete_tasks",
        "complete_tasks",
        "submit_for_review",
        "reopen_tasks",
        # Members
        "invite_members",
        "remove_members",
        "change_roles",
        # Comments
        "add_comments",
    }),
    PC: frozenset({
        "view_project",
        "create_tasks",
        "edit_tasks",
        "assign_tasks",
        "complete_tasks",
        "submit_for_review",
        "invite_members",
        "remove_members",   # Team Members only, enforced by the membership service
        "view_audit_log",
        "add_comments",
    }),
    TM: frozenset({
        "view_project",
        "submit_for_review",
        "add_comments",
    }),
}

ALL_CAPABILITIES: FrozenSet[str] = frozenset().union(*ROLE_PERMISSIONS.values())


def has_permission(role, capability: str) -> bool:
    """True if ``role`` grants ``capability``. Unknown roles grant nothing."""
    parsed = parse_role(role)
    if parsed is None:
        return False
    return capability in ROLE_PERMISSIONS[parsed]


def is_pm_or_pc(role) -> bool:
    """True for Project Managers and Project Coordinators."""
    return parse_role(role) in (PM, PC)


def get_permissions(role) -> FrozenSet[str]:
    """All capabilities of a role (empty for unknown roles)."""
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_PERMISSIONS[parsed]
