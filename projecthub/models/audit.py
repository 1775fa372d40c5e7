"""
Audit trail value types.

Every successful mutation is recorded as one typed change. The change is
persisted as ``old_value``/``new_value`` JSON objects keyed by the field that
moved (``{"status": ...}``, ``{"assigned_to": ...}``, ``{"role": ...}``,
``{"delegated_pm_until": ...}``) so the stored rows stay queryable, and can be
read back into the same typed change with ``change_from_values``. Task
creation stores its title and initial status.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .roles import ProjectRole, format_role
from .task import TaskStatus, format_status


class AuditAction(str, Enum):
    """Actions written to the project audit log."""
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    ROLE_CHANGED = "role_changed"
    PM_DELEGATION = "pm_delegation"
    PM_DELEGATION_REVOKED = "pm_delegation_revoked"


class AuditEntityType(str, Enum):
    TASK = "task"
    MEMBER = "member"


class TaskStatusChange(BaseModel):
    """A task moved between board columns."""
    kind: Literal["task_status_change"] = "task_status_change"
    old: TaskStatus
    new: TaskStatus

    @property
    def action(self) -> AuditAction:
        return AuditAction.TASK_STATUS_CHANGED

    @property
    def entity_type(self) -> AuditEntityType:
        return AuditEntityType.TASK

    def old_value(self) -> Optional[Dict[str, Any]]:
        return {"status": self.old.value}

    def new_value(self) -> Optional[Dict[str, Any]]:
        return {"status": self.new.value}


class TaskCreated(BaseModel):
    """A task was added to the board."""
    kind: Literal["task_created"] = "task_created"
    title: str
    status: TaskStatus = TaskStatus.TODO

    @property
    def action(self) -> AuditAction:
        return AuditAction.TASK_CREATED

    @property
    def entity_type(self) -> AuditEntityType:
        return AuditEntityType.TASK

    def old_value(self) -> Optional[Dict[str, Any]]:
        return None

    def new_value(self) -> Optional[Dict[str, Any]]:
        return {"title": self.title, "status": self.status.value}


class TaskAssignmentChange(BaseModel):
    """A task's assignee changed. None means unassigned."""
    kind: Literal["task_assignment_change"] = "task_assignment_change"
    old: Optional[str] = None
    new: Optional[str] = None

    @property
    def action(self) -> AuditAction:
        return AuditAction.TASK_ASSIGNED

    @property
    def entity_type(self) -> AuditEntityType:
        return AuditEntityType.TASK

    def old_value(self) -> Optional[Dict[str, Any]]:
        return {"assigned_to": self.old}

    def new_value(self) -> Optional[Dict[str, Any]]:
        return {"assigned_to": self.new}


class MemberRoleChange(BaseModel):
    """
    A membership was created, destroyed or re-roled.

    ``old`` is None for an added member, ``new`` is None for a removed one.
    """
    kind: Literal["member_role_change"] = "member_role_change"
    old: Optional[ProjectRole] = None
    new: Optional[ProjectRole] = None

    @model_validator(mode="after")
    def _require_one_side(self) -> "MemberRoleChange":
        if self.old is None and self.new is None:
            raise ValueError("A member role change needs an old or a new role")
        return self

    @property
    def action(self) -> AuditAction:
        if self.old is None:
            return AuditAction.MEMBER_ADDED
        if self.new is None:
            return AuditAction.MEMBER_REMOVED
        return AuditAction.ROLE_CHANGED

    @property
    def entity_type(self) -> AuditEntityType:
        return AuditEntityType.MEMBER

    def old_value(self) -> Optional[Dict[str, Any]]:
        return {"role": self.old.value} if self.old else None

    def new_value(self) -> Optional[Dict[str, Any]]:
        return {"role": self.new.value} if self.new else None


class DelegationChange(BaseModel):
    """PM rights were delegated to, or revoked from, a coordinator."""
    kind: Literal["pm_delegation_change"] = "pm_delegation_change"
    old: Optional[datetime] = None
    new: Optional[datetime] = None

    @property
    def action(self) -> AuditAction:
        if self.new is None:
            return AuditAction.PM_DELEGATION_REVOKED
        return AuditAction.PM_DELEGATION

    @property
    def entity_type(self) -> AuditEntityType:
        return AuditEntityType.MEMBER

    def old_value(self) -> Optional[Dict[str, Any]]:
        return {"delegated_pm_until": self.old.isoformat() if self.old else None}

    def new_value(self) -> Optional[Dict[str, Any]]:
        return {"delegated_pm_until": self.new.isoformat() if self.new else None}


AuditChange = Annotated[
    Union[TaskStatusChange, TaskCreated, TaskAssignmentChange, MemberRoleChange, DelegationChange],
    Field(discriminator="kind"),
]

_change_adapter = TypeAdapter(AuditChange)

_KIND_BY_ACTION = {
    AuditAction.TASK_STATUS_CHANGED: ("task_status_change", "status"),
    AuditAction.TASK_ASSIGNED: ("task_assignment_change", "assigned_to"),
    AuditAction.MEMBER_ADDED: ("member_role_change", "role"),
    AuditAction.MEMBER_REMOVED: ("member_role_change", "role"),
    AuditAction.ROLE_CHANGED: ("member_role_change", "role"),
    AuditAction.PM_DELEGATION: ("pm_delegation_change", "delegated_pm_until"),
    AuditAction.PM_DELEGATION_REVOKED: ("pm_delegation_change", "delegated_pm_until"),
}


def change_from_values(
    action: str,
    old_value: Optional[Dict[str, Any]],
    new_value: Optional[Dict[str, Any]],
):
    """Rebuild the typed change for a stored audit row, or None if unknown."""
    try:
        action = AuditAction(action)
    except ValueError:
        return None

    if action == AuditAction.TASK_CREATED:
        return _change_adapter.validate_python({"kind": "task_created", **(new_value or {})})

    kind, field = _KIND_BY_ACTION[action]
    return _change_adapter.validate_python({
        "kind": kind,
        "old": (old_value or {}).get(field),
        "new": (new_value or {}).get(field),
    })


class AuditLogEntry(BaseModel):
    """An immutable audit row."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    project_id: str
    user_id: str
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    def change(self):
        """The typed change this entry records."""
        return change_from_values(self.action, self.old_value, self.new_value)

    def describe(self) -> str:
        """One-line summary for activity feeds."""
        change = self.change()

        if isinstance(change, TaskStatusChange):
            return f"changed task status: {format_status(change.old)} -> {format_status(change.new)}"
        if isinstance(change, TaskCreated):
            return f"created task \"{change.title}\""
        if isinstance(change, TaskAssignmentChange):
            if change.new is None:
                return "unassigned task"
            return f"assigned task to {change.new}"
        if isinstance(change, MemberRoleChange):
            if change.action == AuditAction.MEMBER_ADDED:
                return f"added member as {format_role(change.new)}"
            if change.action == AuditAction.MEMBER_REMOVED:
                return "removed member"
            return f"changed role: {format_role(change.old)} -> {format_role(change.new)}"
        if isinstance(change, DelegationChange):
            if change.action == AuditAction.PM_DELEGATION:
                return "delegated PM rights"
            return "revoked PM delegation"

        return self.action.replace("_", " ")
