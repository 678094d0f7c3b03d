"""Task status classification.

Task status is stored as a free-form string (imports from other trackers bring
their own casing). Everything that cares about status goes through
``classify_status`` and keys off ``TaskStatus``, never off string content.
"""

from __future__ import annotations

import re
from enum import Enum


class TaskStatus(str, Enum):
    """Closed set of recognized task statuses."""

    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    IN_REVIEW = "In Review"
    DONE = "Done"
    BLOCKED = "Blocked"
    UNKNOWN = "Unknown"


_ALIASES: dict[str, TaskStatus] = {
    "to do": TaskStatus.TODO,
    "todo": TaskStatus.TODO,
    "open": TaskStatus.TODO,
    "backlog": TaskStatus.TODO,
    "in progress": TaskStatus.IN_PROGRESS,
    "inprogress": TaskStatus.IN_PROGRESS,
    "doing": TaskStatus.IN_PROGRESS,
    "in review": TaskStatus.IN_REVIEW,
    "review": TaskStatus.IN_REVIEW,
    "qa": TaskStatus.IN_REVIEW,
    "done": TaskStatus.DONE,
    "closed": TaskStatus.DONE,
    "blocked": TaskStatus.BLOCKED,
}

_SEPARATORS = re.compile(r"[\s_\-]+")


def normalize_status(raw: str | None) -> str:
    """Lower-case, trim and collapse ``_``/``-``/whitespace runs to one space."""
    if not raw:
        return ""
    return _SEPARATORS.sub(" ", raw).strip().lower()


def classify_status(raw: str | None) -> TaskStatus:
    """Map a raw status string onto ``TaskStatus``.

    >>> classify_status("in_progress")
    <TaskStatus.IN_PROGRESS: 'In Progress'>
    >>> classify_status("Closed")
    <TaskStatus.DONE: 'Done'>
    """
    return _ALIASES.get(normalize_status(raw), TaskStatus.UNKNOWN)


def is_done_status(raw: str | None) -> bool:
    """True for done-equivalent statuses (Done, done, Closed, closed, ...)."""
    return classify_status(raw) is TaskStatus.DONE
