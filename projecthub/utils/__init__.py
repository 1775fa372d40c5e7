"""Shared helpers: side-effect dispatch, datetimes and logging setup."""

from .background_tasks import (
    create_safe_task,
    dispatch_side_effect,
    safe_background_task,
    wait_for_background_tasks,
)
from .datetime_utils import utc_now, to_aware_utc, parse_timestamp, format_local, get_local_tz
from .logging_setup import configure_logging

__all__ = [
    "create_safe_task",
    "dispatch_side_effect",
    "safe_background_task",
    "wait_for_background_tasks",
    "utc_now",
    "to_aware_utc",
    "parse_timestamp",
    "format_local",
    "get_local_tz",
    "configure_logging",
]
