"""Project roles and membership snapshots."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProjectRole(str, Enum):
    """Roles a user can hold inside a single project."""
    PROJECT_MANAGER = "project_manager"
    PROJECT_COORDINATOR = "project_coordinator"
    TEAM_MEMBER = "team_member"


ROLE_META = {
    ProjectRole.PROJECT_MANAGER: {"label": "Project Manager", "short_label": "PM"},
    ProjectRole.PROJECT_COORDINATOR: {"label": "Project Coordinator", "short_label": "PC"},
    ProjectRole.TEAM_MEMBER: {"label": "Team Member", "short_label": "TM"},
}


def parse_role(value) -> Optional[ProjectRole]:
    """Coerce a raw role value to ProjectRole, returning None when unknown."""
    if isinstance(value, ProjectRole):
        return value
    try:
        return ProjectRole(value)
    except ValueError:
        return None


def format_role(role) -> str:
    """Human-readable role label."""
    parsed = parse_role(role)
    if parsed is None:
        return str(role) if role else "Unknown"
    return ROLE_META[parsed]["label"]


def get_role_short(role) -> str:
    """Short role abbreviation (PM / PC / TM)."""
    parsed = parse_role(role)
    return ROLE_META[parsed]["short_label"] if parsed else "?"


def get_all_roles() -> list:
    """All role keys, highest authority first."""
    return list(ROLE_META.keys())


class ProjectMembership(BaseModel):
    """One user's standing in one project, as read from persistence."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project_id: str
    user_id: str
    role: ProjectRole
    delegated_pm_until: Optional[datetime] = None
    invited_by: Optional[str] = None
    joined_at: Optional[datetime] = None
