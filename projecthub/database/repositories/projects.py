"""
Project repository.

Creating a project also makes its creator the first Project Manager, in
the same transaction, so a project never exists without a PM row.
"""

import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import ProjectDB, ProjectMemberDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from ...models.roles import ProjectRole
from ...utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class ProjectRepository:
    """Repository for project operations."""

    def __init__(self, db=None):
        self.db = db or get_database()

    async def create(
        self,
        title: str,
        created_by: str,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> ProjectDB:
        """Create a new project with its creator as Project Manager."""
        async with self.db.session() as session:
            try:
                project = ProjectDB(
                    title=title,
                    description=description,
                    created_by=created_by,
                )
                if project_id:
                    project.id = project_id
                session.add(project)
                await session.flush()

                session.add(ProjectMemberDB(
                    project_id=project.id,
                    user_id=created_by,
                    role=ProjectRole.PROJECT_MANAGER.value,
                    invited_by=created_by,
                    joined_at=utc_now(),
                ))
                await session.flush()

                logger.info(f"Created project {project.id}: {title}")
                return project

            except IntegrityError as e:
                logger.error(f"Constraint violation creating project {title}: {e}")
                raise DatabaseConstraintError(f"Cannot create project {title}: duplicate or constraint violation") from e

            except Exception as e:
                logger.error(f"CRITICAL: Project creation failed for {title}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create project {title}") from e

    async def get(self, project_id: str) -> Optional[ProjectDB]:
        """Get project by ID."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectDB).where(ProjectDB.id == project_id)
                )
                return result.scalar_one_or_none()
            except Exception as e:
                logger.error(f"Error fetching project {project_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to fetch project {project_id}") from e

    async def list_for_user(self, user_id: str) -> List[ProjectDB]:
        """Projects the user is a member of, newest first."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(ProjectDB)
                    .join(ProjectMemberDB, ProjectMemberDB.project_id == ProjectDB.id)
                    .where(ProjectMemberDB.user_id == user_id)
                    .order_by(ProjectDB.created_at.desc())
                )
                return list(result.scalars().all())
            except Exception as e:
                logger.error(f"Error listing projects for {user_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to list projects for {user_id}") from e


# Singleton
_project_repository: Optional[ProjectRepository] = None


def get_project_repository() -> ProjectRepository:
    """Get the project repository singleton."""
    global _project_repository
    if _project_repository is None:
        _project_repository = ProjectRepository()
    return _project_repository
