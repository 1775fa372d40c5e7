"""
Operator CLI.

    python -m projecthub init-db
    python -m projecthub audit-log PROJECT_ID --actor USER_ID [--limit N]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .database.connection import close_database, init_database
from .services.audit import AuditLogWriter
from .utils.background_tasks import wait_for_background_tasks
from .utils.datetime_utils import format_local
from .utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)


async def run_init_db() -> bool:
    """Create all tables."""
    try:
        ok = await init_database()
        if ok:
            print("Database tables created")
        else:
            print("Database initialization failed, check DATABASE_URL")
        return ok
    finally:
        await close_database()


async def run_audit_log(project_id: str, actor_id: str, limit: Optional[int]) -> bool:
    """Print the project's audit trail if the actor may view it."""
    try:
        result = await AuditLogWriter().list_audit_log(project_id, actor_id, limit=limit)
        if not result.success:
            print(f"Error: {result.message}")
            return False

        if not result.entries:
            print("No activity recorded yet")
        for entry in result.entries:
            print(f"{format_local(entry.created_at)}  {entry.user_id}  {entry.describe()}")
        return True
    finally:
        await wait_for_background_tasks(timeout=5)
        await close_database()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="projecthub",
        description="Project role and task workflow administration",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    audit = subparsers.add_parser("audit-log", help="Show a project's audit trail")
    audit.add_argument("project_id", help="Project ID")
    audit.add_argument("--actor", required=True, help="User ID to authorize as")
    audit.add_argument("--limit", type=int, default=None, help="Number of entries (default: AUDIT_LOG_DEFAULT_LIMIT)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "init-db":
        success = asyncio.run(run_init_db())
    else:
        success = asyncio.run(run_audit_log(args.project_id, args.actor, args.limit))

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
