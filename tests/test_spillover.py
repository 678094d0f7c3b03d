"""Tests for spillover detection and the idempotent upsert pass."""

from __future__ import annotations

from datetime import timedelta

import pytest

from sprintboard.analytics.spillover import (
    detect_spillovers,
    ensure_spillover_records,
    upsert_spillovers,
)


class TestDetectSpillovers:
    """Test which tasks count as spillovers."""

    def test_open_task_after_sprint_end(self, ended_sprint, make_task, now):
        """Sprint ended 5 days ago, task still in progress: 5 spillover days."""
        task = make_task("a", "In Progress")

        results = detect_spillovers(ended_sprint, [task], now)

        assert len(results) == 1
        assert results[0].task_id == "a"
        assert results[0].sprint_id == ended_sprint.id
        assert results[0].spillover_days == 5
        assert results[0].resolved_at is None

    def test_done_task_resolved_after_end(self, ended_sprint, make_task, now):
        """Done, but resolved 2 days after the sprint ended: 2 spillover days."""
        resolved = ended_sprint.end_date + timedelta(days=2)
        task = make_task("b", "Done", resolved_at=resolved)

        results = detect_spillovers(ended_sprint, [task], now)

        assert [(r.task_id, r.spillover_days) for r in results] == [("b", 2)]
        assert results[0].resolved_at == resolved

    @pytest.mark.parametrize("status", ["Done", "done", "Closed", "closed"])
    def test_done_on_time_is_not_spillover(self, ended_sprint, make_task, now, status):
        task = make_task("c", status, resolved_at=ended_sprint.end_date)
        assert detect_spillovers(ended_sprint, [task], now) == []

    def test_done_without_resolution_is_not_spillover(self, ended_sprint, make_task, now):
        assert detect_spillovers(ended_sprint, [make_task("d", "Done")], now) == []

    def test_partial_days_round_up(self, ended_sprint, make_task):
        task = make_task("e", "To Do")
        later = ended_sprint.end_date + timedelta(days=1, hours=1)
        assert detect_spillovers(ended_sprint, [task], later)[0].spillover_days == 2

    def test_running_sprint_has_no_spillovers(self, running_sprint, make_task, now):
        tasks = [make_task("f", "In Progress", sprint_id=running_sprint.id)]
        assert detect_spillovers(running_sprint, tasks, now) == []

    def test_sprint_ending_now_has_no_spillovers(self, ended_sprint, make_task):
        tasks = [make_task("g", "To Do")]
        assert detect_spillovers(ended_sprint, tasks, ended_sprint.end_date) == []

    def test_active_state_is_not_consulted(self, make_sprint, make_task, now):
        """An elapsed sprint still marked active is treated as ended."""
        sprint = make_sprint(end=now - timedelta(days=1), state="active")
        assert len(detect_spillovers(sprint, [make_task("h", "Blocked")], now)) == 1


class TestUpsertSpillovers:
    """Test persisting detected spillovers."""

    @pytest.mark.asyncio
    async def test_inserts_then_updates(self, ended_sprint, make_task, make_repository, now):
        repo = make_repository([ended_sprint], [make_task("a", "In Progress")])

        first = await ensure_spillover_records(repo, ended_sprint.id, now)
        assert (first.inserted, first.updated) == (1, 0)

        later = now + timedelta(days=2)
        second = await ensure_spillover_records(repo, ended_sprint.id, later)
        assert (second.inserted, second.updated) == (0, 1)

        rows = await repo.list_spillovers(ended_sprint.id)
        assert len(rows) == 1
        assert rows[0].spillover_days == 7

    @pytest.mark.asyncio
    async def test_repeated_calls_store_identical_values(self, ended_sprint, make_task, make_repository, now):
        tasks = [
            make_task("a", "In Progress"),
            make_task("b", "Done", resolved_at=ended_sprint.end_date + timedelta(days=2)),
            make_task("c", "Done", resolved_at=ended_sprint.end_date - timedelta(days=1)),
        ]
        repo = make_repository([ended_sprint], tasks)

        await ensure_spillover_records(repo, ended_sprint.id, now)
        snapshot = {r.task_id: r.model_dump() for r in await repo.list_spillovers(ended_sprint.id)}
        await ensure_spillover_records(repo, ended_sprint.id, now)
        again = {r.task_id: r.model_dump() for r in await repo.list_spillovers(ended_sprint.id)}

        assert snapshot == again
        assert set(snapshot) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_rows(self, ended_sprint, make_task, make_repository, now):
        tasks = [make_task("a", "To Do"), make_task("b", "To Do"), make_task("c", "To Do")]
        repo = make_repository([ended_sprint], tasks)
        repo.fail_task_ids = {"b"}

        report = await upsert_spillovers(repo, ended_sprint.id, detect_spillovers(ended_sprint, tasks, now))

        assert report.ok is False
        assert [f.task_id for f in report.failures] == ["b"]
        assert report.inserted == 2
        assert report.processed == 3
        assert {r.task_id for r in await repo.list_spillovers(ended_sprint.id)} == {"a", "c"}

    @pytest.mark.asyncio
    async def test_rows_for_recovered_tasks_are_kept(self, ended_sprint, make_task, make_repository, now):
        """A task that stops qualifying keeps its existing row."""
        task = make_task("a", "To Do")
        repo = make_repository([ended_sprint], [task])
        await ensure_spillover_records(repo, ended_sprint.id, now)

        repo.tasks["a"] = task.model_copy(update={"status": "Done", "resolved_at": ended_sprint.end_date})
        report = await ensure_spillover_records(repo, ended_sprint.id, now)

        assert report.processed == 0
        assert len(await repo.list_spillovers(ended_sprint.id)) == 1

    @pytest.mark.asyncio
    async def test_missing_sprint_is_a_no_op(self, repository):
        report = await ensure_spillover_records(repository, "nope")
        assert report.ok is True
        assert report.processed == 0
