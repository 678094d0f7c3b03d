"""Timeline view: bars, drag controllers and optimistic commits for one sprint.

The view owns two task lists:

- ``committed`` — what the persistence collaborator has acknowledged;
- the draft — ``committed`` with every in-flight mutation applied in order.

The draft is what gets rendered. A successful commit folds its mutation into
``committed``; a failed one is dropped and the draft rebuilt, which restores
the whole list to its pre-action state. Commits for the same task are sent one
at a time so the store sees them in the order the user made them (last write
wins); a new drag never waits for an earlier commit.

A drag release or summary commit changes the draft before returning. The
send itself runs as a task on the running loop, or waits for ``drain()`` when
there is none.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from sprintboard import metrics
from sprintboard.config import settings
from sprintboard.models.schemas import Sprint, SprintReadModel, Task, TaskPatch, utcnow
from sprintboard.models.status import TaskStatus
from sprintboard.timeline.drag import (
    BarGeometry,
    DragCommit,
    DragController,
    SummaryEditor,
)
from sprintboard.timeline.geometry import DayLabel, date_to_x, day_labels, today_x

logger = logging.getLogger(__name__)

TaskCommitter = Callable[[str, TaskPatch], Awaitable[Any]]


class BarColor(str, Enum):
    SPILLOVER = "spillover"
    DONE = "done"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    BLOCKED = "blocked"
    TODO = "todo"


_STATUS_COLORS = {
    TaskStatus.DONE: BarColor.DONE,
    TaskStatus.IN_PROGRESS: BarColor.IN_PROGRESS,
    TaskStatus.IN_REVIEW: BarColor.REVIEW,
    TaskStatus.BLOCKED: BarColor.BLOCKED,
}


def bar_color(task: Task, is_spillover: bool = False) -> BarColor:
    """Color key for a bar. Spillover wins, then status, then the blocked flag."""
    if is_spillover:
        return BarColor.SPILLOVER
    color = _STATUS_COLORS.get(task.status_class)
    if color is not None:
        return color
    if task.blocked:
        return BarColor.BLOCKED
    return BarColor.TODO


def layout_bar(
    task: Task,
    range_start: datetime,
    range_end: datetime,
    track_width: float,
    min_width: float,
) -> BarGeometry | None:
    """Pixel geometry for a task's date range; None when the task has no dates."""
    if not task.has_dates:
        return None
    x = date_to_x(task.start_date, range_start, range_end, track_width)
    right = date_to_x(task.end_date, range_start, range_end, track_width)
    return BarGeometry(x=x, width=max(min_width, right - x))


@dataclass(frozen=True)
class TimelineBar:
    task: Task
    geometry: BarGeometry
    visible: bool
    color: BarColor
    is_spillover: bool = False


@dataclass(frozen=True)
class Notice:
    """Non-fatal message for the caller to surface (e.g. a reverted drag)."""

    task_id: str
    message: str
    error: str = ""


@dataclass
class _Mutation:
    seq: int
    task_id: str
    kind: str
    updates: dict[str, Any] = field(default_factory=dict)


def _apply(tasks: Iterable[Task], mutation: _Mutation) -> list[Task]:
    return [t.model_copy(update=mutation.updates) if t.id == mutation.task_id else t for t in tasks]


class TimelineView:
    """Composes geometry, drag controllers and commits for one sprint's chart.

    Args:
        sprint: Sprint whose window defines the date range
        tasks: Committed tasks, in display order
        committer: Async callable persisting a ``TaskPatch`` for a task id
        track_width: Width of the bar track; defaults to ``settings.chart_width``
        editable: Whether bars accept drags
        spillover_task_ids: Tasks to paint as spillovers
        now: Clock used for the today marker
    """

    def __init__(
        self,
        sprint: Sprint,
        tasks: Iterable[Task],
        committer: TaskCommitter,
        *,
        track_width: float | None = None,
        editable: bool = False,
        spillover_task_ids: Iterable[str] = (),
        min_bar_width: float | None = None,
        now: datetime | None = None,
    ) -> None:
        self.sprint = sprint
        self.committer = committer
        self.track_width = float(settings.chart_width if track_width is None else track_width)
        self.editable = editable
        self.spillover_task_ids = set(spillover_task_ids)
        self.min_bar_width = settings.min_bar_width if min_bar_width is None else min_bar_width
        self.now = now

        self._committed: list[Task] = list(tasks)
        self._pending: list[_Mutation] = []
        self._draft: list[Task] = list(self._committed)
        self._seq = itertools.count(1)
        self._locks: dict[str, asyncio.Lock] = {}
        self._inflight: set[asyncio.Task] = set()
        self._queued: list[tuple[_Mutation, TaskPatch]] = []
        self._controllers: dict[str, DragController] = {}
        self._editors: dict[str, SummaryEditor] = {}
        self.notices: list[Notice] = []

    @classmethod
    def from_read_model(cls, model: SprintReadModel, committer: TaskCommitter, **kwargs: Any) -> "TimelineView":
        spillovers = getattr(model, "spillover_task_ids", None)
        if spillovers is not None:
            kwargs.setdefault("spillover_task_ids", spillovers)
        return cls(model.sprint, model.tasks, committer, **kwargs)

    # ── Read side ──

    @property
    def range_start(self) -> datetime:
        return self.sprint.start_date

    @property
    def range_end(self) -> datetime:
        return self.sprint.end_date

    @property
    def tasks(self) -> list[Task]:
        """Draft task list; authoritative for rendering."""
        return list(self._draft)

    @property
    def committed(self) -> list[Task]:
        return list(self._committed)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self._draft if t.id == task_id), None)

    def bars(self) -> list[TimelineBar]:
        """One bar per task; tasks without dates get an invisible bar."""
        bars = []
        for task in self._draft:
            is_spillover = task.id in self.spillover_task_ids
            color = bar_color(task, is_spillover)
            controller = self._controllers.get(task.id)
            if controller is not None and controller.is_dragging:
                geometry = controller.geometry
            else:
                geometry = layout_bar(task, self.range_start, self.range_end, self.track_width, self.min_bar_width)
            if geometry is None:
                bars.append(TimelineBar(task, BarGeometry(0.0, 0.0), False, color, is_spillover))
            else:
                bars.append(TimelineBar(task, geometry, True, color, is_spillover))
        return bars

    def day_labels(self) -> list[DayLabel]:
        return day_labels(self.range_start, self.range_end)

    def today_x(self) -> float | None:
        return today_x(self.now or utcnow(), self.range_start, self.range_end, self.track_width)

    # ── Interaction ──

    def controller(self, task_id: str) -> DragController:
        """Drag controller for a task's bar, created on first use."""
        task = self.task(task_id)
        if task is None:
            raise KeyError(task_id)
        geometry = layout_bar(task, self.range_start, self.range_end, self.track_width, self.min_bar_width)
        controller = self._controllers.get(task_id)
        if controller is None:
            controller = DragController(
                task_id,
                geometry or BarGeometry(0.0, 0.0),
                track_width=self.track_width,
                range_start=self.range_start,
                range_end=self.range_end,
                editable=self.editable and geometry is not None,
                on_commit=self._on_drag_commit,
                min_width=self.min_bar_width,
            )
            self._controllers[task_id] = controller
        else:
            controller.editable = self.editable and geometry is not None
            if geometry is not None:
                controller.sync(geometry)
        return controller

    def editor(self, task_id: str) -> SummaryEditor:
        """Inline summary editor for a task's label."""
        task = self.task(task_id)
        if task is None:
            raise KeyError(task_id)
        editor = self._editors.get(task_id)
        if editor is None:
            editor = SummaryEditor(task_id, task.summary, on_commit=self._on_summary_commit)
            self._editors[task_id] = editor
        elif not editor.is_editing:
            editor.summary = task.summary
            editor.text = task.summary
        return editor

    def reset(self, tasks: Iterable[Task], spillover_task_ids: Iterable[str] | None = None) -> None:
        """Replace the committed list after a fresh read from the store."""
        self._committed = list(tasks)
        if spillover_task_ids is not None:
            self.spillover_task_ids = set(spillover_task_ids)
        self._rebuild_draft()

    async def drain(self) -> None:
        """Send queued commits and wait for every in-flight one to settle."""
        while self._queued or self._inflight:
            queued, self._queued = self._queued, []
            for mutation, patch in queued:
                self._spawn(mutation, patch)
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ── Commits ──

    async def commit_dates(self, task_id: str, start_date: datetime, end_date: datetime) -> bool:
        patch = TaskPatch(start_date=start_date, end_date=end_date)
        mutation = self._stage(task_id, "dates", {"start_date": start_date, "end_date": end_date})
        return await self._send(mutation, patch)

    async def commit_summary(self, task_id: str, summary: str) -> bool:
        mutation = self._stage(task_id, "summary", {"summary": summary})
        return await self._send(mutation, TaskPatch(summary=summary))

    def _on_drag_commit(self, commit: DragCommit) -> None:
        updates = {"start_date": commit.start_date, "end_date": commit.end_date}
        mutation = self._stage(commit.task_id, "dates", updates)
        self._spawn(mutation, commit.to_patch())

    def _on_summary_commit(self, task_id: str, summary: str) -> None:
        mutation = self._stage(task_id, "summary", {"summary": summary})
        self._spawn(mutation, TaskPatch(summary=summary))

    def _spawn(self, mutation: _Mutation, patch: TaskPatch) -> None:
        # Outside a running loop the send waits for drain()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._queued.append((mutation, patch))
            return
        task = loop.create_task(self._send(mutation, patch))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def _stage(self, task_id: str, kind: str, updates: dict[str, Any]) -> _Mutation:
        """Apply a change to the draft right away and mark it pending."""
        mutation = _Mutation(seq=next(self._seq), task_id=task_id, kind=kind, updates=updates)
        self._pending.append(mutation)
        self._rebuild_draft()
        return mutation

    async def _send(self, mutation: _Mutation, patch: TaskPatch) -> bool:
        task_id, kind = mutation.task_id, mutation.kind
        lock = self._locks.setdefault(task_id, asyncio.Lock())
        try:
            async with lock:
                await self.committer(task_id, patch)
        except Exception as e:
            self._pending.remove(mutation)
            self._rebuild_draft()
            logger.warning("Reverted %s change to task %s (#%d): %s", kind, task_id, mutation.seq, e)
            self.notices.append(Notice(task_id=task_id, message=f"Could not save {kind} change; reverted", error=str(e)))
            metrics.timeline_commits_total.labels(kind=kind, outcome="reverted").inc()
            return False

        self._pending.remove(mutation)
        self._committed = _apply(self._committed, mutation)
        self._rebuild_draft()
        metrics.timeline_commits_total.labels(kind=kind, outcome="ok").inc()
        return True

    def _rebuild_draft(self) -> None:
        draft = list(self._committed)
        for mutation in self._pending:
            draft = _apply(draft, mutation)
        self._draft = draft

        for task_id, controller in self._controllers.items():
            task = self.task(task_id)
            if task is None:
                continue
            geometry = layout_bar(task, self.range_start, self.range_end, self.track_width, self.min_bar_width)
            controller.editable = self.editable and geometry is not None
            if geometry is not None:
                controller.sync(geometry)
        for task_id, editor in self._editors.items():
            task = self.task(task_id)
            if task is not None and not editor.is_editing:
                editor.summary = task.summary
                editor.text = task.summary
