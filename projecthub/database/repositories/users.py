"""User repository."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import UserDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user lookups."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def get(self, user_id: str) -> Optional[UserDB]:
        """Get user by ID."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(UserDB).where(UserDB.id == user_id)
                )
                return result.scalar_one_or_none()
            except Exception as e:
                logger.error(f"Error fetching user {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to fetch user {user_id}") from e

    async def exists(self, user_id: str) -> bool:
        """True if the user is known to the system."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(UserDB.id).where(UserDB.id == user_id)
                )
                return result.scalar_one_or_none() is not None
            except Exception as e:
                logger.error(f"Error checking user {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to look up user {user_id}") from e

    async def create(
        self,
        user_id: Optional[str] = None,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> UserDB:
        """Create a user."""
        async with self.db.session() as session:
            try:
                user = UserDB(full_name=full_name, email=email)
                if user_id:
                    user.id = user_id
                session.add(user)
                await session.flush()

                logger.info(f"Created user {user.id}")
                return user

            except IntegrityError as e:
                logger.error(f"Constraint violation creating user {user_id}: {e}")
                raise DatabaseConstraintError(f"User {user_id} already exists") from e

            except Exception as e:
                logger.error(f"CRITICAL: User creation failed for {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create user {user_id}") from e


# Singleton
_user_repository: Optional[UserRepository] = None


def get_user_repository() -> UserRepository:
    """Get the user repository singleton."""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository()
    return _user_repository
