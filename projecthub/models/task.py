"""Task status states and task snapshots."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TaskStatus(str, Enum):
    """Task board columns."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"   # Submitted for PM/PC approval
    BLOCKED = "blocked"
    DONE = "done"


STATUS_LABELS = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.PENDING_REVIEW: "Pending Review",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.DONE: "Done",
}


def parse_status(value) -> Optional[TaskStatus]:
    """Coerce a raw status value to TaskStatus, returning None when unknown."""
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value)
    except ValueError:
        return None


def format_status(status) -> str:
    """Human-readable task status label."""
    parsed = parse_status(status)
    if parsed is None:
        return str(status)
    return STATUS_LABELS[parsed]


class TaskSnapshot(BaseModel):
    """Task row as returned to callers after a status change."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    title: str
    status: TaskStatus
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    updated_at: Optional[datetime] = None
