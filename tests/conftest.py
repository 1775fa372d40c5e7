"""
Pytest configuration and shared fixtures.

Service-level tests run against a real SQLite database in a temporary
file (NullPool, one connection per session) so that guarded writes and
concurrent callers behave as they do against a server database.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from projecthub.database.connection import Database
from projecthub.database.repositories import (
    AuditRepository,
    MemberRepository,
    NotificationRepository,
    ProjectRepository,
    TaskRepository,
    UserRepository,
)
from projecthub.models.roles import ProjectRole
from projecthub.permissions.resolver import EffectiveRoleResolver
from projecthub.services.audit import AuditLogWriter
from projecthub.services.delivery import DatabaseNotificationDelivery
from projecthub.services.membership import MembershipService
from projecthub.services.notifications import NotificationFanout
from projecthub.services.tasks import TaskWorkflowService
from projecthub.utils.background_tasks import wait_for_background_tasks
from projecthub.utils.datetime_utils import utc_now

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite database with all tables created."""
    db = Database(database_url=f"sqlite+aiosqlite:///{tmp_path / 'projecthub.db'}")
    assert await db.initialize()
    yield db
    await wait_for_background_tasks(timeout=5)
    await db.close()


def build_workflow(db, clock=utc_now, await_side_effects=True, delivery=None):
    """Wire every repository and service to ``db``."""
    members = MemberRepository(db)
    projects = ProjectRepository(db)
    users = UserRepository(db)
    tasks = TaskRepository(db)
    audit_repo = AuditRepository(db)
    notification_repo = NotificationRepository(db)

    resolver = EffectiveRoleResolver(members=members, projects=projects)
    audit = AuditLogWriter(repository=audit_repo, resolver=resolver)
    fanout = NotificationFanout(
        members=members,
        projects=projects,
        users=users,
        delivery=delivery or DatabaseNotificationDelivery(notification_repo),
    )
    shared = dict(
        resolver=resolver,
        audit=audit,
        notifications=fanout,
        clock=clock,
        await_side_effects=await_side_effects,
    )

    return SimpleNamespace(
        db=db,
        members=members,
        projects=projects,
        users=users,
        tasks=tasks,
        audit_repo=audit_repo,
        notification_repo=notification_repo,
        resolver=resolver,
        audit=audit,
        fanout=fanout,
        membership=MembershipService(members=members, users=users, **shared),
        task_service=TaskWorkflowService(tasks=tasks, **shared),
    )


@pytest.fixture
def workflow(database):
    """Repositories and services bound to the test database."""
    return build_workflow(database)


@pytest_asyncio.fixture
async def project(workflow):
    """
    A project with one member per role.

    alice is the creator and only PM, carol is a PC, tom is a TM, and
    nina is a registered user who is not a member.
    """
    for user_id, name in [
        ("alice", "Alice Manager"),
        ("carol", "Carol Coordinator"),
        ("tom", "Tom Member"),
        ("nina", "Nina Newcomer"),
    ]:
        await workflow.users.create(user_id=user_id, full_name=name)

    created = await workflow.projects.create(title="Apollo", created_by="alice", project_id="p1")
    await workflow.members.add(created.id, "carol", ProjectRole.PROJECT_COORDINATOR, invited_by="alice")
    await workflow.members.add(created.id, "tom", ProjectRole.TEAM_MEMBER, invited_by="alice")
    return created


@pytest.fixture
def workflow_factory(database):
    """Build another set of services on the same database with different options."""
    def factory(**options):
        return build_workflow(database, **options)
    return factory
