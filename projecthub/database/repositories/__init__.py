"""
Repository classes for database operations.

Each repository handles CRUD and guarded writes for its entity type.
"""

from .members import MemberRepository, WriteOutcome, get_member_repository
from .tasks import TaskRepository, get_task_repository
from .projects import ProjectRepository, get_project_repository
from .users import UserRepository, get_user_repository
from .audit import AuditRepository, get_audit_repository
from .notifications import NotificationRepository, get_notification_repository

__all__ = [
    "MemberRepository",
    "WriteOutcome",
    "get_member_repository",
    "TaskRepository",
    "get_task_repository",
    "ProjectRepository",
    "get_project_repository",
    "UserRepository",
    "get_user_repository",
    "AuditRepository",
    "get_audit_repository",
    "NotificationRepository",
    "get_notification_repository",
]
