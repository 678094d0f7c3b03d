"""Pydantic models for data flowing through the sprint board.

Relations are id-keyed (``Task.sprint_id``, ``Spillover.task_id``); no model
holds a reference to another entity object.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sprintboard.models.status import TaskStatus, classify_status, is_done_status


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _UtcModel(BaseModel):
    """Base model that normalizes every datetime field to aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return as_utc(value)
        return value


# ── Enums ──


class SprintState(str, Enum):
    """Lifecycle of a sprint. Closure is observed lazily on read."""

    ACTIVE = "active"
    CLOSED = "closed"


class HealthBand(str, Enum):
    """Three-tier classification of a health score."""

    HEALTHY = "healthy"
    AT_RISK = "at_risk"
    CRITICAL = "critical"


# ── Entities ──


class Workspace(_UtcModel):
    """A group of sprints sharing a default sprint length."""

    id: str
    name: str
    sprint_length_days: int = Field(default=14, ge=1)


class Sprint(_UtcModel):
    """A fixed, date-bounded unit of planned work."""

    id: str
    name: str
    state: SprintState = SprintState.ACTIVE
    start_date: datetime
    end_date: datetime
    workspace_id: str

    @model_validator(mode="after")
    def _check_window(self) -> "Sprint":
        if self.start_date >= self.end_date:
            raise ValueError("Sprint start_date must be before end_date")
        return self

    def has_elapsed(self, now: datetime) -> bool:
        """True once ``now`` is past the sprint window."""
        return self.end_date < now

    @property
    def is_closed(self) -> bool:
        return self.state == SprintState.CLOSED


class Task(_UtcModel):
    """A unit of work owned by exactly one sprint."""

    id: str
    sprint_id: str
    summary: str
    status: str = TaskStatus.TODO.value
    order: int = 0
    start_date: datetime | None = None
    end_date: datetime | None = None
    estimate: float | None = None
    blocked: bool = False
    links: str | None = None
    resolved_at: datetime | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> "Task":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("Task start_date must not be after end_date")
        return self

    @property
    def status_class(self) -> TaskStatus:
        return classify_status(self.status)

    @property
    def is_done(self) -> bool:
        return is_done_status(self.status)

    @property
    def has_dates(self) -> bool:
        return self.start_date is not None and self.end_date is not None


class Spillover(_UtcModel):
    """Persisted spillover row. Derived from Task + Sprint state and upserted."""

    id: str
    task_id: str
    sprint_id: str
    spillover_days: int = Field(ge=0)
    resolved_at: datetime | None = None


class SpilloverResult(_UtcModel):
    """A freshly detected spillover, not yet persisted."""

    task_id: str
    sprint_id: str
    spillover_days: int = Field(ge=0)
    resolved_at: datetime | None = None


class SpilloverNote(BaseModel):
    """Analysis service's explanation for one spillover."""

    task_summary: str = Field(alias="taskSummary")
    reason: str

    model_config = ConfigDict(populate_by_name=True)


class SprintInsight(_UtcModel):
    """Persisted output of the sprint analysis service."""

    id: str
    sprint_id: str
    summary: str
    spillover_classifications: list[SpilloverNote] = Field(default_factory=list)
    provider: str
    model: str | None = None
    created_at: datetime


# ── Health ──


class SprintHealth(BaseModel):
    """Health score (0–100) and band for a sprint."""

    score: int = Field(ge=0, le=100)
    band: HealthBand
    spillover_count: int = 0
    spillover_days: int = 0
    completed_count: int = 0
    total_count: int = 0
    blocked_count: int = 0

    @classmethod
    def unknown(cls) -> "SprintHealth":
        """Zero-signal sentinel for a sprint that could not be found."""
        return cls(score=0, band=HealthBand.CRITICAL)

    @property
    def completion_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.completed_count / self.total_count


# ── Requests / patches ──


class WorkspaceCreate(BaseModel):
    name: str = Field(min_length=1)
    sprint_length_days: int = Field(default=14, ge=1)


class WorkspacePatch(BaseModel):
    """Workspace settings update. Only the sprint length can change."""

    model_config = ConfigDict(extra="forbid")

    sprint_length_days: int | None = None


class SprintCreate(_UtcModel):
    """Request body for creating a sprint."""

    workspace_id: str
    name: str
    start_date: datetime
    end_date: datetime | None = None
    state: SprintState = SprintState.ACTIVE

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value


class SprintPatch(_UtcModel):
    """Partial sprint update. Unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    state: SprintState | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @property
    def touches_dates(self) -> bool:
        return self.start_date is not None or self.end_date is not None


class TaskCreate(_UtcModel):
    """Request body for creating a task."""

    sprint_id: str
    summary: str
    status: str = TaskStatus.TODO.value
    order: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    estimate: float | None = None
    blocked: bool = False
    links: str | None = None
    resolved_at: datetime | None = None

    @field_validator("summary")
    @classmethod
    def _strip_summary(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("summary is required")
        return value

    @field_validator("links")
    @classmethod
    def _blank_links(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class TaskPatch(_UtcModel):
    """Partial task update, as sent by the timeline and the task panel.

    ``links=""`` clears the links; omitting it leaves them alone.
    """

    model_config = ConfigDict(extra="forbid")

    start_date: datetime | None = None
    end_date: datetime | None = None
    summary: str | None = None
    status: str | None = None
    sprint_id: str | None = None
    order: int | None = None
    blocked: bool | None = None
    links: str | None = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON body with ISO-8601 dates, only set fields."""
        return self.model_dump(mode="json", exclude_unset=True)


# ── Read models ──


class SprintSummary(BaseModel):
    """Sprint list entry."""

    sprint: Sprint
    task_count: int = 0


class SprintReadModel(BaseModel):
    """Snapshot of a sprint and its tasks, as consumed by the timeline."""

    sprint: Sprint
    tasks: list[Task] = Field(default_factory=list)

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)


class SprintDetail(SprintReadModel):
    """Full sprint read: tasks, spillovers, health and neighbours."""

    spillovers: list[Spillover] = Field(default_factory=list)
    health: SprintHealth
    prev_sprint_id: str | None = None
    next_sprint_id: str | None = None

    @property
    def spillover_task_ids(self) -> set[str]:
        return {s.task_id for s in self.spillovers}
