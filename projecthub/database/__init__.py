"""
Database layer: async SQLAlchemy engine, ORM tables and repositories.
"""

from .connection import Database, get_database, init_database, close_database
from .models import (
    Base,
    UserDB,
    ProjectDB,
    ProjectMemberDB,
    TaskDB,
    ProjectAuditLogDB,
    NotificationDB,
)
from .exceptions import (
    DatabaseError,
    DatabaseConnectionError,
    DatabaseConstraintError,
    DatabaseOperationError,
)

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "close_database",
    "Base",
    "UserDB",
    "ProjectDB",
    "ProjectMemberDB",
    "TaskDB",
    "ProjectAuditLogDB",
    "NotificationDB",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseConstraintError",
    "DatabaseOperationError",
]
