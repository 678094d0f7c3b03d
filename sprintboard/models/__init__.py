"""Domain models: entities, read models and status classification."""

from sprintboard.models.schemas import (
    HealthBand,
    Spillover,
    SpilloverResult,
    Sprint,
    SprintDetail,
    SprintHealth,
    SprintPatch,
    SprintReadModel,
    SprintState,
    Task,
    TaskPatch,
)
from sprintboard.models.status import TaskStatus, classify_status, is_done_status

__all__ = [
    "HealthBand",
    "Spillover",
    "SpilloverResult",
    "Sprint",
    "SprintDetail",
    "SprintHealth",
    "SprintPatch",
    "SprintReadModel",
    "SprintState",
    "Task",
    "TaskPatch",
    "TaskStatus",
    "classify_status",
    "is_done_status",
]
