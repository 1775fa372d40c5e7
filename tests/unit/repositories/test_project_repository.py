"""
Unit tests for ProjectRepository, NotificationRepository and the Database
connection manager, mostly against a temporary SQLite database.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from projecthub.database.connection import Database
from projecthub.database.exceptions import DatabaseConstraintError, DatabaseOperationError
from projecthub.models.notification import NotificationEvent, NotificationType
from projecthub.models.roles import ProjectRole


@pytest.mark.asyncio
async def test_create_makes_creator_pm(workflow):
    project = await workflow.projects.create(title="Apollo", created_by="alice")

    member = await workflow.members.get(project.id, "alice")
    assert member is not None
    assert member.role == ProjectRole.PROJECT_MANAGER.value
    assert member.invited_by == "alice"
    assert project.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_duplicate_project_id_is_constraint_error(workflow):
    await workflow.projects.create(title="Apollo", created_by="alice", project_id="p1")

    with pytest.raises(DatabaseConstraintError):
        await workflow.projects.create(title="Apollo again", created_by="bob", project_id="p1")


@pytest.mark.asyncio
async def test_list_for_user(workflow, project):
    await workflow.projects.create(title="Gemini", created_by="olga", project_id="p2")

    assert [p.id for p in await workflow.projects.list_for_user("tom")] == ["p1"]
    assert await workflow.projects.list_for_user("nina") == []


@pytest.mark.asyncio
async def test_notifications_mark_read(workflow):
    events = [
        NotificationEvent(
            user_id="tom",
            project_id="p1",
            notification_type=NotificationType.ROLE_CHANGED,
            title="Your project role changed",
            message=f'Your role in "Apollo" is now Project Coordinator. ({n})',
        )
        for n in range(3)
    ]
    assert await workflow.notification_repo.insert_many(events) == 3

    rows = await workflow.notification_repo.list_for_user("tom")
    assert await workflow.notification_repo.mark_read("tom", [rows[0].id]) == 1
    assert await workflow.notification_repo.mark_read("carol", [rows[1].id]) == 0

    unread = await workflow.notification_repo.list_for_user("tom", unread_only=True)
    assert len(unread) == 2


@pytest.mark.asyncio
async def test_health_check(database):
    health = await database.health_check()

    assert health["status"] == "healthy"
    assert health["dialect"] == "sqlite"


@pytest.mark.asyncio
async def test_unconfigured_database_does_not_initialize(monkeypatch):
    monkeypatch.setattr("projecthub.database.connection.settings.database_url", "")

    db = Database()

    assert await db.initialize() is False
    assert (await db.health_check())["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_concurrent_first_sessions_create_one_engine(tmp_path):
    db = Database(database_url=f"sqlite+aiosqlite:///{tmp_path / 'lazy.db'}")

    with patch("projecthub.database.connection.create_async_engine", wraps=create_async_engine) as factory:
        results = await asyncio.gather(*(db.initialize() for _ in range(5)))

    assert results == [True] * 5
    assert factory.call_count == 1
    await db.close()


@pytest.mark.asyncio
async def test_commit_failure_is_operation_error():
    session = AsyncMock()
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("database is locked"))
    session_ctx = MagicMock()
    session_ctx.__aenter__ = AsyncMock(return_value=session)
    session_ctx.__aexit__ = AsyncMock(return_value=None)

    db = Database(database_url="sqlite+aiosqlite:///:memory:")
    db._initialized = True
    db.session_factory = Mock(return_value=session_ctx)

    with pytest.raises(DatabaseOperationError):
        async with db.session():
            pass

    session.rollback.assert_awaited_once()
