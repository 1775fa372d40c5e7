"""In-app notification events."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.datetime_utils import utc_now


class NotificationType(str, Enum):
    """Notification types emitted by the fan-out."""
    TASK_REVIEW_REQUESTED = "task_review_requested"   # TM submitted a task (-> PM/PC)
    TASK_APPROVED = "task_approved"                   # PM/PC approved a task (-> assignee)
    TASK_REJECTED = "task_rejected"                   # PM/PC sent a task back (-> assignee)
    TASK_ASSIGNED = "task_assigned"                   # Task assigned (-> assignee)
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    ROLE_CHANGED = "role_changed"
    PM_DELEGATED = "pm_delegated"
    PM_DELEGATION_REVOKED = "pm_delegation_revoked"


class NotificationEvent(BaseModel):
    """A notice addressed to one user."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    project_id: Optional[str] = None
    notification_type: NotificationType
    title: str
    message: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    read: bool = False
    created_at: datetime = Field(default_factory=utc_now)
