"""
SQLAlchemy models for the project workflow schema.

Schema includes:
- Users known to the system
- Projects and their role-bearing memberships
- Tasks with status and completion provenance
- Append-only project audit log
- In-app notifications
"""

import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from ..models.roles import ProjectRole
from ..models.task import TaskStatus
from ..utils.datetime_utils import to_aware_utc, utc_now


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that drop tzinfo (SQLite)."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_aware_utc(value)

    def process_result_value(self, value, dialect):
        return to_aware_utc(value)


def _new_id() -> str:
    return str(uuid.uuid4())


def _in_check(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ==================== USERS ====================

class UserDB(Base):
    """Users that can be invited to projects."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=_new_id)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)

    __table_args__ = (
        Index("idx_users_email", "email"),
    )


# ==================== PROJECTS ====================

class ProjectDB(Base):
    """Projects own tasks and memberships."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index("idx_projects_created_by", "created_by"),
    )


class ProjectMemberDB(Base):
    """One user's role in one project."""
    __tablename__ = "project_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ProjectRole.TEAM_MEMBER.value
    )

    # PC acts as PM while this is in the future; evaluated lazily, never swept
    delegated_pm_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    invited_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        CheckConstraint(_in_check("role", ProjectRole), name="ck_project_member_role"),
        Index("idx_members_project_role", "project_id", "role"),
        Index("idx_members_user", "user_id"),
    )


# ==================== TASKS ====================

class TaskDB(Base):
    """Project tasks on the status board."""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=TaskStatus.TODO.value)

    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Set only while status is done
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint(_in_check("status", TaskStatus), name="ck_tasks_status"),
        Index("idx_tasks_project", "project_id"),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_assignee", "assigned_to"),
    )


# ==================== AUDIT LOG ====================

class ProjectAuditLogDB(Base):
    """Append-only record of authorized project mutations."""
    __tablename__ = "project_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # The change
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # task, member
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    old_value: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)

    __table_args__ = (
        Index("idx_project_audit_project", "project_id", "created_at"),
        Index("idx_project_audit_entity", "entity_type", "entity_id"),
    )


# ==================== NOTIFICATIONS ====================

class NotificationDB(Base):
    """In-app notifications, marked read and deleted by the delivery side."""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now)

    __table_args__ = (
        Index("idx_notifications_user", "user_id", "read"),
    )
