"""
Notification repository.

Stores in-app notifications. Inserting is the only operation the workflow
core performs; reading and marking read belong to the delivery side.
"""

import logging
from typing import Optional, List, Sequence

from sqlalchemy import select, update

from ..connection import get_database
from ..models import NotificationDB
from ..exceptions import DatabaseOperationError
from ...models.notification import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationRepository:
    """Repository for notification rows."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def insert_many(self, events: Sequence[NotificationEvent]) -> int:
        """Insert a batch of notifications in one transaction."""
        if not events:
            return 0

        async with self.db.session() as session:
            try:
                session.add_all([
                    NotificationDB(
                        user_id=event.user_id,
                        project_id=event.project_id,
                        notification_type=event.notification_type.value,
                        title=event.title,
                        message=event.message,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        read=event.read,
                        created_at=event.created_at,
                    )
                    for event in events
                ])
                await session.flush()

                logger.debug(f"Inserted {len(events)} notification(s)")
                return len(events)

            except Exception as e:
                logger.error(f"Error inserting notifications: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to insert {len(events)} notification(s)") from e

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[NotificationDB]:
        """A user's notifications, newest first."""
        query = select(NotificationDB).where(NotificationDB.user_id == user_id)
        if unread_only:
            query = query.where(NotificationDB.read.is_(False))
        query = query.order_by(NotificationDB.created_at.desc(), NotificationDB.id.desc()).limit(limit)

        async with self.db.session() as session:
            try:
                result = await session.execute(query)
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error listing notifications for {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to list notifications for {user_id}") from e

    async def mark_read(self, user_id: str, notification_ids: Sequence[int]) -> int:
        """Mark a user's notifications as read."""
        if not notification_ids:
            return 0

        async with self.db.session() as session:
            try:
                result = await session.execute(
                    update(NotificationDB)
                    .where(
                        NotificationDB.user_id == user_id,
                        NotificationDB.id.in_(list(notification_ids)),
                    )
                    .values(read=True)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount
            except Exception as e:
                logger.error(f"Error marking notifications read for {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to mark notifications read for {user_id}") from e


# Singleton
_notification_repository: Optional[NotificationRepository] = None


def get_notification_repository() -> NotificationRepository:
    """Get the notification repository singleton."""
    global _notification_repository
    if _notification_repository is None:
        _notification_repository = NotificationRepository()
    return _notification_repository
