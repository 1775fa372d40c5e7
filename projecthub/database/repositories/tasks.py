"""
Task repository.

Handles:
- Task lookup and creation
- Conditional status writes with completion bookkeeping
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import TaskDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ...models.task import TaskStatus
from ...utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def get(self, task_id: str) -> Optional[TaskDB]:
        """Get task by ID."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(TaskDB).where(TaskDB.id == task_id)
                )
                return result.scalar_one_or_none()
            except Exception as e:
                logger.error(f"Error fetching task {task_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to fetch task {task_id}") from e

    async def create(
        self,
        project_id: str,
        title: str,
        created_by: Optional[str] = None,
        assigned_to: Optional[str] = None,
        status: TaskStatus = TaskStatus.TODO,
        description: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> TaskDB:
        """Create a new task."""
        async with self.db.session() as session:
            try:
                task = TaskDB(
                    project_id=project_id,
                    title=title,
                    description=description,
                    status=TaskStatus(status).value,
                    assigned_to=assigned_to,
                    created_by=created_by,
                )
                if task_id:
                    task.id = task_id
                if task.status == TaskStatus.DONE.value:
                    task.completed_at = utc_now()
                    task.completed_by = created_by

                session.add(task)
                await session.flush()

                logger.info(f"Created task {task.id} in project {project_id}")
                return task

            except IntegrityError as e:
                logger.error(f"Constraint violation creating task: {e}")
                raise DatabaseConstraintError(f"Cannot create task {title}: duplicate or constraint violation") from e

            except Exception as e:
                logger.error(f"CRITICAL: Task creation failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create task {title}") from e

    async def assign(
        self,
        task_id: str,
        assignee_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> Optional[TaskDB]:
        """Set or clear the assignee. Returns the updated task, or None if it is gone."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    update(TaskDB)
                    .where(TaskDB.id == task_id)
                    .values(assigned_to=assignee_id, updated_at=now or utc_now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None

                refreshed = await session.execute(
                    select(TaskDB)
                    .where(TaskDB.id == task_id)
                    .execution_options(populate_existing=True)
                )
                logger.info(f"Task {task_id} assigned to {assignee_id}")
                return refreshed.scalar_one()

            except Exception as e:
                logger.error(f"CRITICAL: Assignment failed for {task_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to assign task {task_id}") from e

    async def transition_status(
        self,
        task_id: str,
        expected_status: TaskStatus,
        new_status: TaskStatus,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[TaskDB]:
        """
        Move a task to ``new_status`` if it is still in ``expected_status``.

        Entering done stamps completed_at/completed_by; leaving done clears
        both. Returns the updated task, or None if the task is gone or was
        moved by someone else in the meantime.
        """
        expected = TaskStatus(expected_status)
        target = TaskStatus(new_status)
        now = now or utc_now()

        values = {"status": target.value, "updated_at": now}
        if target == TaskStatus.DONE:
            values["completed_at"] = now
            values["completed_by"] = actor_id
        elif expected == TaskStatus.DONE:
            values["completed_at"] = None
            values["completed_by"] = None

        async with self.db.session() as session:
            try:
                result = await session.execute(
                    update(TaskDB)
                    .where(TaskDB.id == task_id, TaskDB.status == expected.value)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.info(f"Task {task_id} not moved: no longer in {expected.value}")
                    return None

                refreshed = await session.execute(
                    select(TaskDB)
                    .where(TaskDB.id == task_id)
                    .execution_options(populate_existing=True)
                )
                task = refreshed.scalar_one()

                logger.info(f"Task {task_id} status changed: {expected.value} -> {target.value}")
                return task

            except Exception as e:
                logger.error(f"CRITICAL: Status change failed for {task_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to change status of task {task_id}") from e


# Singleton
_task_repository: Optional[TaskRepository] = None


def get_task_repository() -> TaskRepository:
    """Get the task repository singleton."""
    global _task_repository
    if _task_repository is None:
        _task_repository = TaskRepository()
    return _task_repository
