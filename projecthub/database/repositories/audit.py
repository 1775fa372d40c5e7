"""
Project audit log repository.

Rows are append-only: this repository inserts and reads, it never
updates or deletes. Each row records who acted, the action, the entity
touched and JSON snapshots of the value before and after.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import select

from ..connection import get_database
from ..models import ProjectAuditLogDB
from ..exceptions import DatabaseOperationError
from ...utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class AuditRepository:
    """Repository for audit log operations."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def insert(
        self,
        project_id: str,
        user_id: str,
        action: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> ProjectAuditLogDB:
        """Append one audit row."""
        async with self.db.session() as session:
            try:
                log_entry = ProjectAuditLogDB(
                    project_id=project_id,
                    user_id=user_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    old_value=old_value,
                    new_value=new_value,
                    created_at=created_at or utc_now(),
                )
                session.add(log_entry)
                await session.flush()

                logger.debug(f"Audit log: {action} on {entity_type}/{entity_id} by {user_id}")
                return log_entry

            except Exception as e:
                logger.error(f"Error creating audit log: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to write audit entry {action} for {project_id}") from e

    async def list_by_project(
        self,
        project_id: str,
        limit: int = 30,
    ) -> List[ProjectAuditLogDB]:
        """Audit rows for a project, newest first."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectAuditLogDB)
                    .where(ProjectAuditLogDB.project_id == project_id)
                    .order_by(ProjectAuditLogDB.created_at.desc(), ProjectAuditLogDB.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error reading audit log for {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to read audit log for {project_id}") from e

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
    ) -> List[ProjectAuditLogDB]:
        """Audit rows touching one task or member, newest first."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectAuditLogDB)
                    .where(
                        ProjectAuditLogDB.entity_type == entity_type,
                        ProjectAuditLogDB.entity_id == entity_id,
                    )
                    .order_by(ProjectAuditLogDB.created_at.desc(), ProjectAuditLogDB.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error reading history of {entity_type}/{entity_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to read history of {entity_type} {entity_id}") from e


# Singleton
_audit_repository: Optional[AuditRepository] = None


def get_audit_repository() -> AuditRepository:
    """Get the audit repository singleton."""
    global _audit_repository
    if _audit_repository is None:
        _audit_repository = AuditRepository()
    return _audit_repository
