"""Process-wide logging configuration for entry points."""

import logging
import sys
from typing import Optional

from config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging to stdout.

    The library itself never calls this on import; applications and the
    CLI call it once at startup.
    """
    level_name = (level or settings.log_level or "INFO").upper()

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # SQLAlchemy echo is controlled by DATABASE_ECHO, keep its logger quiet otherwise
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
