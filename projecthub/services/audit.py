"""
Audit Log Writer.

Writes one immutable entry per successful mutation and serves the
project's audit trail to members allowed to see it. A failed write is an
operator concern: it is logged and never reported to the end user.
"""

import logging
from datetime import datetime
from typing import Optional

from config import settings
from ..database.repositories import AuditRepository, get_audit_repository
from ..models.audit import AuditChange, AuditLogEntry
from ..models.results import AuditLogResult
from ..permissions.matrix import has_permission
from ..permissions.resolver import EffectiveRoleResolver
from .base import business_operation
from .errors import PermissionDeniedError, UnauthenticatedError

logger = logging.getLogger(__name__)

MAX_AUDIT_LOG_LIMIT = 500


class AuditLogWriter:
    """Appends audit entries and gates reads behind view_audit_log."""

    def __init__(
        self,
        repository: Optional[AuditRepository] = None,
        resolver: Optional[EffectiveRoleResolver] = None,
    ):
        self.repository = repository or get_audit_repository()
        self.resolver = resolver or EffectiveRoleResolver()

    async def record_audit(
        self,
        project_id: str,
        actor_id: str,
        change: AuditChange,
        entity_id: Optional[str],
    ) -> Optional[AuditLogEntry]:
        """
        Append the entry for ``change``.

        Returns the stored entry, or None when the write failed. Failures
        are logged at WARNING and never raised.
        """
        try:
            row = await self.repository.insert(
                project_id=project_id,
                user_id=actor_id,
                action=change.action.value,
                entity_type=change.entity_type.value,
                entity_id=entity_id,
                old_value=change.old_value(),
                new_value=change.new_value(),
            )
            return AuditLogEntry.model_validate(row)
        except Exception as e:
            logger.warning(
                f"Audit entry {change.action.value} for {project_id}/{entity_id} was not written: {e}",
                exc_info=True,
            )
            return None

    @business_operation(AuditLogResult, "Could not load the audit log. Please try again.")
    async def list_audit_log(
        self,
        project_id: str,
        actor_id: Optional[str],
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AuditLogResult:
        """Newest-first audit entries, for PMs and PCs only."""
        if not actor_id:
            raise UnauthenticatedError("You must be signed in to view the audit log")

        role = await self.resolver.resolve(project_id, actor_id, now)
        if role is None or not has_permission(role, "view_audit_log"):
            raise PermissionDeniedError(
                "Viewing the audit log requires Project Manager or Project Coordinator role"
            )

        if limit is None:
            limit = settings.audit_log_default_limit
        limit = max(1, min(int(limit), MAX_AUDIT_LOG_LIMIT))

        rows = await self.repository.list_by_project(project_id, limit=limit)
        entries = [AuditLogEntry.model_validate(row) for row in rows]
        return AuditLogResult.ok(f"{len(entries)} audit entries", entries=entries)
