"""Workflow services: membership, task status, audit and notifications."""

from .errors import (
    WorkflowError,
    PermissionDeniedError,
    InvalidTransitionError,
    NotFoundError,
    InvariantViolationError,
    AlreadyExistsError,
    UnauthenticatedError,
)
from .audit import AuditLogWriter
from .delivery import (
    NotificationDelivery,
    DatabaseNotificationDelivery,
    WebhookNotificationDelivery,
    NullNotificationDelivery,
    get_notification_delivery,
)
from .notifications import NotificationFanout
from .membership import MembershipService
from .tasks import TaskWorkflowService

__all__ = [
    "WorkflowError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "NotFoundError",
    "InvariantViolationError",
    "AlreadyExistsError",
    "UnauthenticatedError",
    "AuditLogWriter",
    "NotificationDelivery",
    "DatabaseNotificationDelivery",
    "WebhookNotificationDelivery",
    "NullNotificationDelivery",
    "get_notification_delivery",
    "NotificationFanout",
    "MembershipService",
    "TaskWorkflowService",
]
