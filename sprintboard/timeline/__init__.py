"""Gantt timeline: date↔pixel geometry, drag state machines and the view."""

from .drag import BarGeometry, DragCommit, DragController, DragMode, SummaryEditor
from .geometry import date_to_x, x_to_date
from .view import TimelineBar, TimelineView

__all__ = [
    "BarGeometry",
    "DragCommit",
    "DragController",
    "DragMode",
    "SummaryEditor",
    "TimelineBar",
    "TimelineView",
    "date_to_x",
    "x_to_date",
]
