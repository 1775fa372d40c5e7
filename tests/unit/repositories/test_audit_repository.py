"""
Unit tests for AuditRepository.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest
import pytz

from projecthub.database.exceptions import DatabaseOperationError
from projecthub.database.models import ProjectAuditLogDB
from projecthub.database.repositories.audit import AuditRepository


@pytest.fixture
def mock_database():
    """Mock database with session context manager."""
    db = Mock()
    session = AsyncMock()

    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = Mock()

    db.session = Mock(return_value=session)
    return db, session


@pytest.mark.asyncio
async def test_insert_adds_row(mock_database):
    db, session = mock_database
    repo = AuditRepository(db)

    row = await repo.insert(
        project_id="p1",
        user_id="alice",
        action="role_changed",
        entity_type="member",
        entity_id="tom",
        old_value={"role": "team_member"},
        new_value={"role": "project_coordinator"},
    )

    session.add.assert_called_once()
    added = session.add.call_args[0][0]
    assert isinstance(added, ProjectAuditLogDB)
    assert added is row
    assert row.new_value == {"role": "project_coordinator"}
    assert row.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_insert_failure_raises_operation_error(mock_database):
    db, session = mock_database
    session.flush.side_effect = RuntimeError("disk full")
    repo = AuditRepository(db)

    with pytest.raises(DatabaseOperationError):
        await repo.insert(project_id="p1", user_id="alice", action="member_added")


@pytest.mark.asyncio
async def test_list_by_project_newest_first(database):
    repo = AuditRepository(database)
    start = datetime(2026, 3, 1, 9, 0, tzinfo=pytz.UTC)
    for minutes, action in [(0, "member_added"), (5, "role_changed"), (10, "member_removed")]:
        await repo.insert(
            project_id="p1", user_id="alice", action=action,
            entity_type="member", entity_id="tom",
            created_at=start + timedelta(minutes=minutes),
        )
    await repo.insert(project_id="p2", user_id="olga", action="member_added")

    rows = await repo.list_by_project("p1", limit=2)

    assert [r.action for r in rows] == ["member_removed", "role_changed"]
    assert rows[0].created_at == start + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_entity_history(database):
    repo = AuditRepository(database)
    await repo.insert(project_id="p1", user_id="alice", action="task_status_changed",
                      entity_type="task", entity_id="t1", new_value={"status": "in_progress"})
    await repo.insert(project_id="p1", user_id="alice", action="task_status_changed",
                      entity_type="task", entity_id="t2", new_value={"status": "in_progress"})

    rows = await repo.get_entity_history("task", "t1")

    assert len(rows) == 1
    assert rows[0].entity_id == "t1"
