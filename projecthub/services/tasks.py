"""
Task workflow.

Status changes are validated against the transition table for the actor's
effective role and written conditionally on the status that was validated.
Creating and assigning tasks are gated by create_tasks and assign_tasks.
Each success records an audit entry and notifies reviewers or the assignee.
"""

import logging
from typing import Optional

from ..database.repositories import TaskRepository, get_task_repository
from ..models.audit import TaskAssignmentChange, TaskCreated, TaskStatusChange
from ..models.results import TaskUpdateResult
from ..models.roles import format_role
from ..models.task import TaskSnapshot, TaskStatus, format_status, parse_status
from ..workflow.transitions import validate_transition
from .base import WorkflowService, business_operation
from .errors import InvalidTransitionError, InvariantViolationError, NotFoundError

logger = logging.getLogger(__name__)


class TaskWorkflowService(WorkflowService):
    """Creates, assigns and moves tasks on behalf of project members."""

    def __init__(self, tasks: Optional[TaskRepository] = None, **kwargs):
        super().__init__(**kwargs)
        self.tasks = tasks or get_task_repository()

    async def _require_assignee(self, project_id: str, assignee_id: Optional[str], now) -> None:
        if assignee_id and await self.resolver.resolve(project_id, assignee_id, now) is None:
            raise NotFoundError("Assignee is not a member of this project")

    @business_operation(TaskUpdateResult, "Could not save the task. Please try again.")
    async def create_task(
        self,
        project_id: str,
        actor_id: Optional[str],
        title: str,
        description: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> TaskUpdateResult:
        """
        Add a task to the To Do column.

        Requires create_tasks, and assign_tasks as well when ``assigned_to``
        is given. The assignee must belong to the project.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        self._require(
            actor_role, "create_tasks",
            f"Your role ({format_role(actor_role)}) cannot create tasks. "
            f"Required: Project Manager or Project Coordinator",
        )
        if assigned_to:
            self._require(actor_role, "assign_tasks")

        title = (title or "").strip()
        if not title:
            raise InvariantViolationError("Task title is required")
        await self._require_assignee(project_id, assigned_to, now)

        task = await self.tasks.create(
            project_id=project_id,
            title=title,
            created_by=actor_id,
            assigned_to=assigned_to,
            description=description,
        )
        snapshot = TaskSnapshot.model_validate(task)

        await self._side_effect(
            self.audit.record_audit(project_id, actor_id, TaskCreated(title=title), task.id),
            f"audit-task-created-{task.id}",
        )
        await self._side_effect(
            self.notifications.task_assigned(snapshot, actor_id),
            f"notify-task-assigned-{task.id}",
        )

        return TaskUpdateResult.ok("Task created", task=snapshot)

    @business_operation(TaskUpdateResult, "Could not save the assignment. Please try again.")
    async def assign_task(
        self,
        task_id: str,
        project_id: str,
        actor_id: Optional[str],
        assignee_id: Optional[str],
    ) -> TaskUpdateResult:
        """Assign a task to a project member, or unassign it with None."""
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)
        self._require(
            actor_role, "assign_tasks",
            f"Your role ({format_role(actor_role)}) cannot assign tasks. "
            f"Required: Project Manager or Project Coordinator",
        )

        task = await self.tasks.get(task_id)
        if task is None or task.project_id != project_id:
            raise NotFoundError("Task not found")
        await self._require_assignee(project_id, assignee_id, now)

        previous = task.assigned_to
        updated = await self.tasks.assign(task_id, assignee_id or None, now)
        if updated is None:
            raise NotFoundError("Task not found")
        snapshot = TaskSnapshot.model_validate(updated)

        await self._side_effect(
            self.audit.record_audit(
                project_id, actor_id, TaskAssignmentChange(old=previous, new=snapshot.assigned_to), task_id
            ),
            f"audit-task-assigned-{task_id}",
        )
        await self._side_effect(
            self.notifications.task_assigned(snapshot, actor_id),
            f"notify-task-assigned-{task_id}",
        )

        if snapshot.assigned_to is None:
            return TaskUpdateResult.ok("Task unassigned", task=snapshot)
        return TaskUpdateResult.ok("Task assigned", task=snapshot)

    @business_operation(TaskUpdateResult, "Could not save the task update. Please try again.")
    async def update_task_status(
        self,
        task_id: str,
        project_id: str,
        actor_id: Optional[str],
        new_status,
    ) -> TaskUpdateResult:
        """
        Move a task to ``new_status``.

        Entering done stamps completion provenance; reopening clears it. If
        someone else moved the task after it was read, nothing is written.
        """
        now = self.clock()
        actor_role = await self._resolve_actor(project_id, actor_id, now)

        task = await self.tasks.get(task_id)
        if task is None or task.project_id != project_id:
            raise NotFoundError("Task not found")

        check = validate_transition(task.status, new_status, actor_role)
        if not check.allowed:
            raise InvalidTransitionError(check.reason)

        old_status = TaskStatus(task.status)
        target = parse_status(new_status)

        updated = await self.tasks.transition_status(task_id, old_status, target, actor_id, now)
        if updated is None:
            current = await self.tasks.get(task_id)
            if current is None:
                raise NotFoundError("Task not found")
            raise InvalidTransitionError(
                f'Task status changed to "{format_status(current.status)}" by someone else. '
                f"Reload and try again."
            )

        snapshot = TaskSnapshot.model_validate(updated)

        await self._side_effect(
            self.audit.record_audit(
                project_id, actor_id, TaskStatusChange(old=old_status, new=target), task_id
            ),
            f"audit-task-status-{task_id}",
        )
        await self._side_effect(
            self.notifications.task_status_changed(snapshot, old_status, target, actor_id),
            f"notify-task-status-{task_id}",
        )

        return TaskUpdateResult.ok(f"Task moved to {format_status(target)}", task=snapshot)
