"""Value types shared by the permission, workflow and service layers."""

from .roles import (
    ProjectRole,
    ProjectMembership,
    ROLE_META,
    parse_role,
    format_role,
    get_role_short,
    get_all_roles,
)
from .task import TaskStatus, TaskSnapshot, STATUS_LABELS, parse_status, format_status
from .audit import (
    AuditAction,
    AuditEntityType,
    AuditChange,
    AuditLogEntry,
    TaskStatusChange,
    TaskCreated,
    TaskAssignmentChange,
    MemberRoleChange,
    DelegationChange,
    change_from_values,
)
from .notification import NotificationEvent, NotificationType
from .results import (
    ErrorKind,
    OperationResult,
    TaskUpdateResult,
    AuditLogResult,
    MemberListResult,
    TransitionCheck,
)

__all__ = [
    # Roles
    "ProjectRole",
    "ProjectMembership",
    "ROLE_META",
    "parse_role",
    "format_role",
    "get_role_short",
    "get_all_roles",
    # Tasks
    "TaskStatus",
    "TaskSnapshot",
    "STATUS_LABELS",
    "parse_status",
    "format_status",
    # Audit
    "AuditAction",
    "AuditEntityType",
    "AuditChange",
    "AuditLogEntry",
    "TaskStatusChange",
    "TaskCreated",
    "TaskAssignmentChange",
    "MemberRoleChange",
    "DelegationChange",
    "change_from_values",
    # Notifications
    "NotificationEvent",
    "NotificationType",
    # Results
    "ErrorKind",
    "OperationResult",
    "TaskUpdateResult",
    "AuditLogResult",
    "MemberListResult",
    "TransitionCheck",
]
