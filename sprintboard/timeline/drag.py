"""Pointer-drag and inline-edit state machines for timeline bars.

One ``DragController`` per rendered bar. While dragging, pointer movement only
produces a *candidate* geometry; committed geometry changes on release, when
the candidate is converted back into dates and handed to the commit callback.

    IDLE --press(mode)--> DRAGGING(mode) --move--> DRAGGING(mode)
      ^                          |
      +------ release/cancel ----+
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from sprintboard.models.schemas import TaskPatch
from sprintboard.timeline.geometry import x_to_date

logger = logging.getLogger(__name__)

MIN_BAR_WIDTH = 4.0


class DragMode(str, Enum):
    """Which transform a drag applies to a bar."""

    MOVE = "move"
    RESIZE_LEFT = "resize_left"
    RESIZE_RIGHT = "resize_right"


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class BarGeometry:
    """Horizontal extent of a bar in track pixels."""

    x: float
    width: float

    @property
    def right(self) -> float:
        return self.x + self.width


@dataclass(frozen=True)
class DragCommit:
    """Dates produced by a finished drag."""

    task_id: str
    start_date: datetime
    end_date: datetime

    def to_patch(self) -> TaskPatch:
        return TaskPatch(start_date=self.start_date, end_date=self.end_date)


@dataclass
class _DragSession:
    mode: DragMode
    origin_x: float
    baseline: BarGeometry
    candidate: BarGeometry


def candidate_geometry(
    mode: DragMode,
    baseline: BarGeometry,
    delta_x: float,
    track_width: float,
    last: BarGeometry | None = None,
    min_width: float = MIN_BAR_WIDTH,
) -> BarGeometry:
    """Geometry a drag of ``delta_x`` pixels would produce.

    ``last`` is the previous valid candidate; a left resize that would shrink
    the bar below ``min_width`` returns it unchanged.
    """
    if mode is DragMode.MOVE:
        upper = max(0.0, track_width - baseline.width)
        x = max(0.0, min(upper, baseline.x + delta_x))
        return BarGeometry(x=x, width=baseline.width)

    if mode is DragMode.RESIZE_LEFT:
        new_left = baseline.x + delta_x
        new_width = baseline.width - delta_x
        if new_width < min_width:
            return last if last is not None else baseline
        return BarGeometry(x=max(0.0, new_left), width=new_width)

    new_width = max(min_width, baseline.width + delta_x)
    return BarGeometry(x=baseline.x, width=new_width)


class DragController:
    """Drag state machine for a single task bar.

    Args:
        task_id: Task the bar belongs to
        geometry: Committed geometry of the bar
        track_width: Width of the bar track in pixels
        range_start: Date at x=0
        range_end: Date at x=track_width
        editable: Presses are ignored unless the chart is editable
        on_commit: Called with a ``DragCommit`` on every release
        min_width: Width floor for resizes
    """

    def __init__(
        self,
        task_id: str,
        geometry: BarGeometry,
        *,
        track_width: float,
        range_start: datetime,
        range_end: datetime,
        editable: bool = True,
        on_commit: Callable[[DragCommit], None] | None = None,
        min_width: float = MIN_BAR_WIDTH,
    ) -> None:
        self.task_id = task_id
        self.track_width = track_width
        self.range_start = range_start
        self.range_end = range_end
        self.editable = editable
        self.on_commit = on_commit
        self.min_width = min_width
        self._committed = geometry
        self._session: _DragSession | None = None

    # ── State ──

    @property
    def state(self) -> DragState:
        return DragState.DRAGGING if self._session else DragState.IDLE

    @property
    def mode(self) -> DragMode | None:
        return self._session.mode if self._session else None

    @property
    def is_dragging(self) -> bool:
        return self._session is not None

    @property
    def committed(self) -> BarGeometry:
        return self._committed

    @property
    def geometry(self) -> BarGeometry:
        """Geometry to render: the candidate while dragging, else committed."""
        if self._session:
            return self._session.candidate
        return self._committed

    def sync(self, geometry: BarGeometry) -> None:
        """Adopt geometry recomputed from task dates.

        Ignored mid-drag so a re-render cannot yank the bar from under the
        pointer.
        """
        if self._session is None:
            self._committed = geometry

    # ── Transitions ──

    def press(self, mode: DragMode, pointer_x: float) -> bool:
        """Start a drag. Returns False when the press is ignored."""
        if not self.editable:
            return False
        if self._session is not None:
            logger.debug("Ignoring press on %s: already dragging (%s)", self.task_id, self._session.mode.value)
            return False
        self._session = _DragSession(
            mode=DragMode(mode),
            origin_x=pointer_x,
            baseline=self._committed,
            candidate=self._committed,
        )
        return True

    def move(self, pointer_x: float) -> BarGeometry:
        """Update the candidate for the current pointer position."""
        session = self._session
        if session is None:
            return self._committed
        session.candidate = candidate_geometry(
            session.mode,
            session.baseline,
            pointer_x - session.origin_x,
            self.track_width,
            last=session.candidate,
            min_width=self.min_width,
        )
        return session.candidate

    def release(self) -> DragCommit | None:
        """Finish the drag and emit the candidate as a date range."""
        session = self._session
        if session is None:
            return None
        self._session = None

        final = session.candidate
        self._committed = final
        commit = DragCommit(
            task_id=self.task_id,
            start_date=x_to_date(final.x, self.range_start, self.range_end, self.track_width),
            end_date=x_to_date(final.right, self.range_start, self.range_end, self.track_width),
        )
        logger.debug(
            "Drag %s on %s: x=%.1f w=%.1f -> %s..%s",
            session.mode.value, self.task_id, final.x, final.width,
            commit.start_date.isoformat(), commit.end_date.isoformat(),
        )
        if self.on_commit is not None:
            self.on_commit(commit)
        return commit

    def cancel(self) -> None:
        """Abandon the drag; the committed geometry is untouched."""
        self._session = None


# ── Inline summary editing ──


class EditState(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"


class SummaryEditor:
    """Viewing/Editing state machine for a task's summary label."""

    def __init__(
        self,
        task_id: str,
        summary: str,
        on_commit: Callable[[str, str], None] | None = None,
    ) -> None:
        self.task_id = task_id
        self.summary = summary
        self.on_commit = on_commit
        self.state = EditState.VIEWING
        self.text = summary

    @property
    def is_editing(self) -> bool:
        return self.state is EditState.EDITING

    def begin(self) -> None:
        """Enter editing (double-click)."""
        self.state = EditState.EDITING
        self.text = self.summary

    def update(self, text: str) -> None:
        if self.is_editing:
            self.text = text

    def commit(self) -> str | None:
        """Leave editing (blur/Enter). Returns the new summary, or None if discarded."""
        if not self.is_editing:
            return None
        self.state = EditState.VIEWING
        value = self.text.strip()
        if not value or value == self.summary:
            self.text = self.summary
            return None
        self.summary = value
        self.text = value
        if self.on_commit is not None:
            self.on_commit(self.task_id, value)
        return value

    def cancel(self) -> None:
        """Leave editing without committing (Escape)."""
        self.state = EditState.VIEWING
        self.text = self.summary
