"""
Notification Fan-out.

Turns completed task transitions and membership changes into
notification events for the users they affect, then hands the batch to
the configured delivery backend. Everything here is best-effort: lookups
or delivery that fail are logged and the method returns an empty list.
The acting user is never notified about their own action.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..database.repositories import (
    MemberRepository,
    ProjectRepository,
    UserRepository,
    get_member_repository,
    get_project_repository,
    get_user_repository,
)
from ..models.notification import NotificationEvent, NotificationType
from ..models.roles import ProjectRole, format_role
from ..models.task import TaskSnapshot, TaskStatus
from ..utils.datetime_utils import format_local
from .delivery import NotificationDelivery, get_notification_delivery

logger = logging.getLogger(__name__)

REVIEWER_ROLES = (ProjectRole.PROJECT_MANAGER, ProjectRole.PROJECT_COORDINATOR)


class NotificationFanout:
    """Builds and delivers notifications for workflow events."""

    def __init__(
        self,
        members: Optional[MemberRepository] = None,
        projects: Optional[ProjectRepository] = None,
        users: Optional[UserRepository] = None,
        delivery: Optional[NotificationDelivery] = None,
    ):
        self.members = members or get_member_repository()
        self.projects = projects or get_project_repository()
        self.users = users or get_user_repository()
        self._delivery = delivery

    @property
    def delivery(self) -> NotificationDelivery:
        if self._delivery is None:
            self._delivery = get_notification_delivery()
        return self._delivery

    # ==================== TASKS ====================

    async def task_status_changed(
        self,
        task: TaskSnapshot,
        old_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: str,
    ) -> List[NotificationEvent]:
        """Notify reviewers on submission and the assignee on approval or send-back."""
        try:
            events = await self._task_events(task, TaskStatus(old_status), TaskStatus(new_status), actor_id)
        except Exception as e:
            logger.error(f"Could not build notifications for task {task.id}: {e}", exc_info=True)
            return []
        return await self._send(events, f"task {task.id} {old_status} -> {new_status}")

    async def _task_events(
        self,
        task: TaskSnapshot,
        old_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: str,
    ) -> List[NotificationEvent]:
        if new_status == TaskStatus.PENDING_REVIEW:
            reviewers = await self.members.list_user_ids_by_roles(task.project_id, REVIEWER_ROLES)
            submitter = await self._display_name(actor_id)
            return [
                NotificationEvent(
                    user_id=user_id,
                    project_id=task.project_id,
                    notification_type=NotificationType.TASK_REVIEW_REQUESTED,
                    title="Task ready for review",
                    message=f'{submitter} submitted "{task.title}" for review.',
                    entity_type="task",
                    entity_id=task.id,
                )
                for user_id in reviewers
                if user_id != actor_id
            ]

        if old_status != TaskStatus.PENDING_REVIEW:
            return []
        if not task.assigned_to or task.assigned_to == actor_id:
            return []

        if new_status == TaskStatus.DONE:
            return [NotificationEvent(
                user_id=task.assigned_to,
                project_id=task.project_id,
                notification_type=NotificationType.TASK_APPROVED,
                title="Task approved",
                message=f'Your task "{task.title}" has been marked as complete.',
                entity_type="task",
                entity_id=task.id,
            )]

        if new_status == TaskStatus.IN_PROGRESS:
            return [NotificationEvent(
                user_id=task.assigned_to,
                project_id=task.project_id,
                notification_type=NotificationType.TASK_REJECTED,
                title="Task sent back for revision",
                message=f'"{task.title}" has been returned. Please review and resubmit.',
                entity_type="task",
                entity_id=task.id,
            )]

        return []

    async def task_assigned(self, task: TaskSnapshot, actor_id: str) -> List[NotificationEvent]:
        """Tell the new assignee about the task."""
        if not task.assigned_to or task.assigned_to == actor_id:
            return []

        event = NotificationEvent(
            user_id=task.assigned_to,
            project_id=task.project_id,
            notification_type=NotificationType.TASK_ASSIGNED,
            title="New task assigned",
            message=f'You have been assigned "{task.title}".',
            entity_type="task",
            entity_id=task.id,
        )
        return await self._send([event], f"task {task.id} assigned to {task.assigned_to}")

    # ==================== MEMBERS ====================

    async def member_added(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
        role: ProjectRole,
    ) -> List[NotificationEvent]:
        title = await self._project_title(project_id)
        return await self._notify_member(
            project_id, actor_id, user_id,
            NotificationType.MEMBER_ADDED,
            f"Added to project: {title}",
            f"You have been added as {format_role(role)}.",
        )

    async def member_removed(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
    ) -> List[NotificationEvent]:
        title = await self._project_title(project_id)
        return await self._notify_member(
            project_id, actor_id, user_id,
            NotificationType.MEMBER_REMOVED,
            f"Removed from project: {title}",
            "You are no longer a member of this project.",
        )

    async def role_changed(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
        new_role: ProjectRole,
    ) -> List[NotificationEvent]:
        title = await self._project_title(project_id)
        return await self._notify_member(
            project_id, actor_id, user_id,
            NotificationType.ROLE_CHANGED,
            "Your project role changed",
            f'Your role in "{title}" is now {format_role(new_role)}.',
        )

    async def pm_delegated(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
        expires_at: datetime,
    ) -> List[NotificationEvent]:
        title = await self._project_title(project_id)
        return await self._notify_member(
            project_id, actor_id, user_id,
            NotificationType.PM_DELEGATED,
            "PM rights delegated to you",
            f'You can act as Project Manager in "{title}" until {format_local(expires_at)}.',
        )

    async def pm_delegation_revoked(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
    ) -> List[NotificationEvent]:
        title = await self._project_title(project_id)
        return await self._notify_member(
            project_id, actor_id, user_id,
            NotificationType.PM_DELEGATION_REVOKED,
            "PM delegation revoked",
            f'Your temporary Project Manager rights in "{title}" have ended.',
        )

    # ==================== HELPERS ====================

    async def _notify_member(
        self,
        project_id: str,
        actor_id: str,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
    ) -> List[NotificationEvent]:
        if not user_id or user_id == actor_id:
            return []

        event = NotificationEvent(
            user_id=user_id,
            project_id=project_id,
            notification_type=notification_type,
            title=title,
            message=message,
            entity_type="project",
            entity_id=project_id,
        )
        return await self._send([event], f"{notification_type.value} for {user_id}")

    async def _send(self, events: List[NotificationEvent], context: str) -> List[NotificationEvent]:
        """Deliver a batch; failures are logged and reported as nothing sent."""
        if not events:
            return []

        try:
            await self.delivery.deliver(events)
        except Exception as e:
            logger.error(f"Notification delivery failed ({context}): {e}", exc_info=True)
            return []

        logger.info(f"Sent {len(events)} notification(s): {context}")
        return events

    async def _project_title(self, project_id: str) -> str:
        try:
            project = await self.projects.get(project_id)
        except Exception as e:
            logger.warning(f"Could not load project {project_id} for notification: {e}")
            return "a project"
        return project.title if project else "a project"

    async def _display_name(self, user_id: str) -> str:
        try:
            user = await self.users.get(user_id)
        except Exception as e:
            logger.warning(f"Could not load user {user_id} for notification: {e}")
            return "A team member"
        if user and user.full_name:
            return user.full_name
        return "A team member"
