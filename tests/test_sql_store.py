"""Tests for the SQL store against a throwaway SQLite database."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from sprintboard.analytics.detail import get_sprint_detail
from sprintboard.analytics.spillover import ensure_spillover_records
from sprintboard.exceptions import InvalidFieldError, NotFoundError
from sprintboard.memory.seed import DEMO_WORKSPACE, seed_demo
from sprintboard.memory.sql_store import SprintInsightRow, SqlSprintStore
from sprintboard.models.schemas import (
    SpilloverNote,
    SprintCreate,
    SprintPatch,
    SprintState,
    TaskCreate,
    TaskPatch,
    WorkspaceCreate,
    WorkspacePatch,
)

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SqlSprintStore(f"sqlite+aiosqlite:///{tmp_path / 'board.db'}")
    await s.init_db()
    yield s
    await s.disconnect()


async def _workspace(store, length: int = 14):
    return await store.create_workspace(WorkspaceCreate(name="Platform", sprint_length_days=length))


async def _sprint(store, workspace_id: str, start: datetime, name: str = "Sprint"):
    return await store.create_sprint(SprintCreate(workspace_id=workspace_id, name=name, start_date=start))


class TestWorkspaces:
    """Test workspace settings updates."""

    @pytest.mark.asyncio
    async def test_update_sprint_length(self, store):
        ws = await _workspace(store)
        updated = await store.update_workspace(ws.id, WorkspacePatch(sprint_length_days=7))

        assert updated.sprint_length_days == 7
        sprint = await _sprint(store, ws.id, NOW)
        assert sprint.end_date == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 10, 21])
    async def test_only_one_or_two_weeks_allowed(self, store, days):
        ws = await _workspace(store)
        with pytest.raises(InvalidFieldError):
            await store.update_workspace(ws.id, WorkspacePatch(sprint_length_days=days))
        assert (await store.get_workspace(ws.id)).sprint_length_days == 14

    @pytest.mark.asyncio
    async def test_empty_patch_returns_workspace(self, store):
        ws = await _workspace(store)
        assert await store.update_workspace(ws.id, WorkspacePatch()) == ws

    @pytest.mark.asyncio
    async def test_missing_workspace(self, store):
        with pytest.raises(NotFoundError):
            await store.update_workspace("missing", WorkspacePatch(sprint_length_days=7))


class TestSprints:
    """Test sprint creation, updates and lazy closing."""

    @pytest.mark.asyncio
    async def test_end_date_defaults_to_workspace_length(self, store):
        ws = await _workspace(store, length=10)
        sprint = await _sprint(store, ws.id, NOW)

        assert sprint.end_date == NOW + timedelta(days=10)
        assert sprint.state is SprintState.ACTIVE
        assert (await store.get_sprint(sprint.id)).end_date == sprint.end_date

    @pytest.mark.asyncio
    async def test_unknown_workspace(self, store):
        with pytest.raises(NotFoundError):
            await _sprint(store, "missing", NOW)

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected(self, store):
        ws = await _workspace(store)
        with pytest.raises(InvalidFieldError):
            await store.create_sprint(
                SprintCreate(workspace_id=ws.id, name="Bad", start_date=NOW, end_date=NOW - timedelta(days=1))
            )

    @pytest.mark.asyncio
    async def test_list_sprints_newest_first_with_counts(self, store):
        ws = await _workspace(store)
        older = await _sprint(store, ws.id, NOW - timedelta(days=14), "Older")
        newer = await _sprint(store, ws.id, NOW, "Newer")
        await store.create_task(TaskCreate(sprint_id=older.id, summary="One"))
        await store.create_task(TaskCreate(sprint_id=older.id, summary="Two"))

        summaries = await store.list_sprints()

        assert [s.sprint.id for s in summaries] == [newer.id, older.id]
        assert [s.task_count for s in summaries] == [0, 2]

    @pytest.mark.asyncio
    async def test_close_if_elapsed(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW - timedelta(days=20))

        closed = await store.close_if_elapsed(sprint.id, NOW)

        assert closed.state is SprintState.CLOSED
        assert (await store.get_sprint(sprint.id)).is_closed
        assert await store.close_if_elapsed("missing", NOW) is None

    @pytest.mark.asyncio
    async def test_running_sprint_stays_active(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW - timedelta(days=2))
        assert (await store.close_if_elapsed(sprint.id, NOW)).state is SprintState.ACTIVE

    @pytest.mark.asyncio
    async def test_update_name_and_dates(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)

        updated = await store.update_sprint(
            sprint.id, SprintPatch(name="  Renamed ", end_date=NOW + timedelta(days=7)), now=NOW
        )

        assert updated.name == "Renamed"
        assert updated.end_date == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_update_rejects_inverted_window(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        with pytest.raises(InvalidFieldError):
            await store.update_sprint(sprint.id, SprintPatch(start_date=NOW + timedelta(days=30)), now=NOW)

    @pytest.mark.asyncio
    async def test_closed_sprint_dates_are_frozen(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW - timedelta(days=30))
        with pytest.raises(InvalidFieldError):
            await store.update_sprint(sprint.id, SprintPatch(end_date=NOW), now=NOW)
        renamed = await store.update_sprint(sprint.id, SprintPatch(name="Retro"), now=NOW)
        assert renamed.name == "Retro"


class TestTasks:
    """Test task creation and partial updates."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)

        first = await store.create_task(TaskCreate(sprint_id=sprint.id, summary=" First ", links="  "))
        second = await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Second"))

        assert first.summary == "First"
        assert first.status == "To Do"
        assert first.links is None
        assert (first.order, second.order) == (1, 2)
        assert [t.id for t in await store.list_tasks(sprint.id)] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_create_in_missing_sprint(self, store):
        with pytest.raises(NotFoundError):
            await store.create_task(TaskCreate(sprint_id="missing", summary="Lost"))

    @pytest.mark.asyncio
    async def test_done_stamps_and_reopen_clears_resolved_at(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        task = await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Ship it"))

        done = await store.update_task(task.id, TaskPatch(status="closed"), now=NOW)
        assert done.resolved_at == NOW
        assert done.is_done

        again = await store.update_task(task.id, TaskPatch(status="Done"), now=NOW + timedelta(days=1))
        assert again.resolved_at == NOW

        reopened = await store.update_task(task.id, TaskPatch(status="In Progress"), now=NOW)
        assert reopened.resolved_at is None

    @pytest.mark.asyncio
    async def test_dates_and_summary_patch(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        task = await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Draft"))

        updated = await store.update_task(
            task.id, TaskPatch(start_date=NOW, end_date=NOW + timedelta(days=2), summary=" Final ")
        )

        assert updated.summary == "Final"
        assert updated.start_date == NOW
        assert updated.end_date == NOW + timedelta(days=2)

    @pytest.mark.asyncio
    async def test_inverted_dates_rejected(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        task = await store.create_task(TaskCreate(
            sprint_id=sprint.id, summary="Task", start_date=NOW, end_date=NOW + timedelta(days=2),
        ))
        with pytest.raises(InvalidFieldError):
            await store.update_task(task.id, TaskPatch(start_date=NOW + timedelta(days=3)))

    @pytest.mark.asyncio
    async def test_blank_summary_rejected(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        task = await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Task"))
        with pytest.raises(InvalidFieldError):
            await store.update_task(task.id, TaskPatch(summary="   "))

    @pytest.mark.asyncio
    async def test_move_to_other_sprint(self, store):
        ws = await _workspace(store)
        a = await _sprint(store, ws.id, NOW)
        b = await _sprint(store, ws.id, NOW + timedelta(days=14))
        task = await store.create_task(TaskCreate(sprint_id=a.id, summary="Carry over"))

        moved = await store.update_task(task.id, TaskPatch(sprint_id=b.id))

        assert moved.sprint_id == b.id
        assert await store.list_tasks(a.id) == []
        with pytest.raises(NotFoundError):
            await store.update_task(task.id, TaskPatch(sprint_id="missing"))

    @pytest.mark.asyncio
    async def test_delete_removes_spillovers(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW - timedelta(days=20))
        task = await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Late"))
        await ensure_spillover_records(store, sprint.id, NOW)
        assert len(await store.list_spillovers(sprint.id)) == 1

        await store.delete_task(task.id)

        assert await store.get_task(task.id) is None
        assert await store.list_spillovers(sprint.id) == []
        with pytest.raises(NotFoundError):
            await store.delete_task(task.id)


class TestSprintDetail:
    """Test the assembled sprint read."""

    @pytest.mark.asyncio
    async def test_detail_closes_and_records_spillovers(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW - timedelta(days=19))
        await store.create_task(TaskCreate(sprint_id=sprint.id, summary="Open"))
        await store.create_task(TaskCreate(
            sprint_id=sprint.id, summary="Shipped", status="Done", resolved_at=NOW - timedelta(days=10),
        ))

        detail = await get_sprint_detail(store, sprint.id, NOW)

        assert detail.sprint.is_closed
        assert len(detail.spillovers) == 1
        assert detail.spillovers[0].spillover_days == 5
        # 100 - 15 - 10 - 10
        assert detail.health.score == 65

        again = await get_sprint_detail(store, sprint.id, NOW)
        assert [s.model_dump() for s in again.spillovers] == [s.model_dump() for s in detail.spillovers]

    @pytest.mark.asyncio
    async def test_neighbours(self, store):
        ws = await _workspace(store)
        first = await _sprint(store, ws.id, NOW - timedelta(days=28), "One")
        second = await _sprint(store, ws.id, NOW - timedelta(days=14), "Two")
        third = await _sprint(store, ws.id, NOW, "Three")

        d1 = await get_sprint_detail(store, first.id, NOW)
        d3 = await get_sprint_detail(store, third.id, NOW)

        assert (d1.prev_sprint_id, d1.next_sprint_id) == (None, second.id)
        # A running sprint does not link forward
        assert (d3.prev_sprint_id, d3.next_sprint_id) == (second.id, None)

    @pytest.mark.asyncio
    async def test_missing_sprint(self, store):
        with pytest.raises(NotFoundError):
            await get_sprint_detail(store, "missing", NOW)


class TestInsightsAndSeed:
    """Test insight storage and demo data."""

    @pytest.mark.asyncio
    async def test_latest_insight_round_trip(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        assert await store.latest_insight(sprint.id) is None

        notes = [SpilloverNote(task_summary="Auth", reason="underestimated")]
        await store.save_insight(sprint.id, "Went fine.", notes, provider="ollama", model="llama3.2")

        insight = await store.latest_insight(sprint.id)
        assert insight.summary == "Went fine."
        assert insight.spillover_classifications == notes
        assert insight.provider == "ollama"

    @pytest.mark.asyncio
    async def test_spillover_notes_stored_as_json_list(self, store):
        ws = await _workspace(store)
        sprint = await _sprint(store, ws.id, NOW)
        notes = [SpilloverNote(task_summary="Auth", reason="blocked on vendor")]
        insight = await store.save_insight(sprint.id, "Summary", notes, provider="ollama")

        async with store.session() as session:
            row = await session.get(SprintInsightRow, insight.id)
        assert row.spillover_notes == [{"taskSummary": "Auth", "reason": "blocked on vendor"}]

    @pytest.mark.asyncio
    async def test_seed_demo(self, store):
        await _workspace(store)
        workspace = await seed_demo(store)

        assert [w.name for w in await store.list_workspaces()] == [DEMO_WORKSPACE]
        sprints = await store.list_workspace_sprints(workspace.id)
        assert len(sprints) == 3
        assert sprints[0].start_date == datetime(2026, 1, 7, tzinfo=timezone.utc)
        tasks = await store.list_tasks(sprints[0].id)
        assert len(tasks) == 6
        assert tasks[0].summary == "User research and persona definition"
        assert tasks[0].estimate == 6
        assert tasks[0].is_done

    @pytest.mark.asyncio
    async def test_health_check(self, store):
        assert await store.health_check() is True
