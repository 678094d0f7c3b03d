"""Shared test fixtures for the sprint board test suite."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from sprintboard.models.schemas import Spillover, SpilloverResult, Sprint, Task

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)


class InMemoryRepository:
    """``SprintRepository`` over plain dicts, with optional injected failures."""

    def __init__(self, sprints: list[Sprint] = (), tasks: list[Task] = ()) -> None:
        self.sprints = {s.id: s for s in sprints}
        self.tasks = {t.id: t for t in tasks}
        self.spillovers: dict[str, Spillover] = {}
        self.fail_task_ids: set[str] = set()
        self._ids = itertools.count(1)

    async def get_sprint(self, sprint_id: str) -> Sprint | None:
        return self.sprints.get(sprint_id)

    async def list_tasks(self, sprint_id: str) -> list[Task]:
        return sorted((t for t in self.tasks.values() if t.sprint_id == sprint_id), key=lambda t: t.order)

    async def list_spillovers(self, sprint_id: str) -> list[Spillover]:
        return [s for s in self.spillovers.values() if s.sprint_id == sprint_id]

    async def insert_spillover(self, result: SpilloverResult) -> Spillover:
        if result.task_id in self.fail_task_ids:
            raise ConnectionError(f"write refused for {result.task_id}")
        row = Spillover(id=f"sp-{next(self._ids)}", **result.model_dump())
        self.spillovers[row.id] = row
        return row

    async def update_spillover(self, spillover_id: str, spillover_days: int, resolved_at: datetime | None) -> None:
        row = self.spillovers[spillover_id]
        if row.task_id in self.fail_task_ids:
            raise ConnectionError(f"write refused for {row.task_id}")
        self.spillovers[spillover_id] = row.model_copy(
            update={"spillover_days": spillover_days, "resolved_at": resolved_at}
        )


def _build_sprint(
    end: datetime,
    days: int = 14,
    sprint_id: str = "sprint-1",
    **kwargs,
) -> Sprint:
    return Sprint(
        id=sprint_id,
        name=kwargs.pop("name", "Sprint 1"),
        start_date=end - timedelta(days=days),
        end_date=end,
        workspace_id=kwargs.pop("workspace_id", "ws-1"),
        **kwargs,
    )


def _build_task(task_id: str, status: str = "To Do", sprint_id: str = "sprint-1", **kwargs) -> Task:
    return Task(id=task_id, sprint_id=sprint_id, summary=kwargs.pop("summary", f"Task {task_id}"), status=status, **kwargs)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def ended_sprint() -> Sprint:
    """A two-week sprint that ended five days before ``NOW``."""
    return _build_sprint(end=NOW - timedelta(days=5))


@pytest.fixture
def running_sprint() -> Sprint:
    """A two-week sprint that ends three days after ``NOW``."""
    return _build_sprint(end=NOW + timedelta(days=3), sprint_id="sprint-2", name="Sprint 2")


@pytest.fixture
def timeline_sprint() -> Sprint:
    """A 12-day sprint, so a 600-px track is 50 px per day."""
    start = datetime(2026, 1, 5, tzinfo=timezone.utc)
    return Sprint(
        id="sprint-t",
        name="Timeline sprint",
        start_date=start,
        end_date=start + timedelta(days=12),
        workspace_id="ws-1",
    )


@pytest.fixture
def timeline_tasks(timeline_sprint: Sprint) -> list[Task]:
    start = timeline_sprint.start_date
    return [
        _build_task("t1", "In Progress", sprint_id=timeline_sprint.id, order=1,
                  start_date=start + timedelta(days=2), end_date=start + timedelta(days=3)),
        _build_task("t2", "To Do", sprint_id=timeline_sprint.id, order=2,
                  start_date=start + timedelta(days=4), end_date=start + timedelta(days=8)),
        _build_task("t3", "Done", sprint_id=timeline_sprint.id, order=3),
    ]


@pytest.fixture
def make_sprint():
    return _build_sprint


@pytest.fixture
def make_task():
    return _build_task


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def make_repository():
    return InMemoryRepository
