"""
Safe background task execution with error handling.

Audit writes and notification fan-out run as fire-and-forget side effects.
This module keeps them from failing silently by:
- Logging all errors with stack traces
- Tracking task references to prevent GC
- Letting tests and shutdown code drain outstanding work
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)

# Track active tasks to prevent garbage collection
_active_background_tasks: set = set()


async def safe_background_task(coro: Coroutine, task_name: str) -> Any:
    """
    Wrapper for background tasks with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name for logging

    Returns:
        Result of the coroutine if successful, None on error
    """
    try:
        result = await coro
        logger.debug(f"Background task completed: {task_name}")
        return result
    except Exception as e:
        logger.error(
            f"Background task failed: {task_name} - {e}",
            exc_info=True
        )
        return None


def create_safe_task(coro: Coroutine, task_name: str) -> asyncio.Task:
    """
    Create a background task with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name

    Returns:
        asyncio.Task object

    Example:
        task = create_safe_task(
            fanout.member_added(project_id, actor_id, user_id, role),
            f"notify-member-added-{project_id}"
        )
    """
    task = asyncio.create_task(
        safe_background_task(coro, task_name)
    )

    # Store reference to prevent garbage collection
    _active_background_tasks.add(task)

    # Remove from tracking when done
    task.add_done_callback(_active_background_tasks.discard)

    logger.debug(f"Created safe background task: {task_name}")
    return task


async def dispatch_side_effect(coro: Coroutine, task_name: str, wait: bool = False) -> Any:
    """
    Run a best-effort side effect.

    With ``wait`` the coroutine is awaited inline; otherwise it is scheduled
    as a background task. Failures are logged and never raised in either mode.
    """
    if wait:
        return await safe_background_task(coro, task_name)
    create_safe_task(coro, task_name)
    return None


def pending_background_tasks() -> int:
    """Number of side-effect tasks still running."""
    return len(_active_background_tasks)


async def wait_for_background_tasks(timeout: Optional[float] = None) -> None:
    """Wait for every outstanding background task to finish."""
    while True:
        tasks = [t for t in _active_background_tasks if not t.done()]
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} background task(s) still running after {timeout}s")
            return
