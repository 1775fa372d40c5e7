"""
Shared plumbing for the workflow services.

Each public service operation resolves the actor, runs its checks, performs
one primary write and then dispatches audit and notification side effects.
Expected failures are raised as ``WorkflowError`` and turned into failure
results by ``business_operation``; persistence failures of the primary
write become ``infrastructure`` failures.
"""

import functools
import logging
from datetime import datetime
from typing import Callable, Coroutine, Optional, Type

from config import settings
from ..database.exceptions import DatabaseError
from ..models.results import ErrorKind, OperationResult
from ..models.roles import ProjectRole, format_role
from ..permissions.matrix import has_permission
from ..permissions.resolver import EffectiveRoleResolver
from ..utils.background_tasks import dispatch_side_effect
from ..utils.datetime_utils import utc_now
from .errors import PermissionDeniedError, UnauthenticatedError, WorkflowError

logger = logging.getLogger(__name__)


def business_operation(result_cls: Type[OperationResult], infrastructure_message: str):
    """
    Convert raised business errors into ``result_cls`` failures.

    Args:
        result_cls: Result model returned by the wrapped operation
        infrastructure_message: User-facing text when persistence fails
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except WorkflowError as e:
                logger.info(f"{func.__name__} rejected ({e.kind.value}): {e.message}")
                return result_cls.failure(e.kind, e.message)
            except DatabaseError as e:
                logger.error(f"{func.__name__} failed: {e}", exc_info=True)
                return result_cls.failure(ErrorKind.INFRASTRUCTURE, infrastructure_message)
        return wrapper
    return decorator


class WorkflowService:
    """Base for services that authorize an actor and emit side effects."""

    def __init__(
        self,
        resolver: Optional[EffectiveRoleResolver] = None,
        audit=None,
        notifications=None,
        clock: Callable[[], datetime] = utc_now,
        await_side_effects: Optional[bool] = None,
    ):
        from .audit import AuditLogWriter
        from .notifications import NotificationFanout

        self.resolver = resolver or EffectiveRoleResolver()
        self.audit = audit or AuditLogWriter(resolver=self.resolver)
        self.notifications = notifications or NotificationFanout()
        self.clock = clock
        self.await_side_effects = (
            settings.await_side_effects if await_side_effects is None else await_side_effects
        )

    async def _side_effect(self, coro: Coroutine, name: str) -> None:
        """Run a best-effort audit or notification step."""
        await dispatch_side_effect(coro, name, wait=self.await_side_effects)

    async def _resolve_actor(
        self,
        project_id: str,
        actor_id: Optional[str],
        now: datetime,
    ) -> ProjectRole:
        """Effective role of the actor, or raise if there is none."""
        if not actor_id:
            raise UnauthenticatedError("You must be signed in to do this")

        role = await self.resolver.resolve(project_id, actor_id, now)
        if role is None:
            raise PermissionDeniedError("You are not a member of this project")
        return role

    @staticmethod
    def _require(role: ProjectRole, capability: str, message: Optional[str] = None) -> None:
        """Raise PermissionDenied unless ``role`` grants ``capability``."""
        if has_permission(role, capability):
            return
        raise PermissionDeniedError(
            message or f"Your role ({format_role(role)}) lacks the {capability} permission"
        )
