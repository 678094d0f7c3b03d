"""SQL persistence for workspaces, sprints, tasks and spillovers.

Uses SQLAlchemy async; asyncpg against PostgreSQL in production, aiosqlite
for local runs and tests.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    JSON,
    Integer,
    String,
    Text,
    UniqueConstraint,
    delete,
    event,
    func,
    select,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from sprintboard.config import settings
from sprintboard.exceptions import InvalidFieldError, NotFoundError
from sprintboard.models.schemas import (
    Spillover,
    SpilloverNote,
    SpilloverResult,
    Sprint,
    SprintCreate,
    SprintInsight,
    SprintPatch,
    SprintState,
    SprintSummary,
    Task,
    TaskCreate,
    TaskPatch,
    Workspace,
    WorkspaceCreate,
    WorkspacePatch,
    as_utc,
    utcnow,
)
from sprintboard.models.status import is_done_status
from sprintboard.retry import retry_on_database_error

logger = logging.getLogger(__name__)

SPRINT_LENGTH_CHOICES = (7, 14)


def _new_id() -> str:
    return uuid.uuid4().hex


# ── ORM Base ──


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all tables."""
    pass


# ── Tables ──


class WorkspaceRow(Base):
    __tablename__ = "workspaces"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    sprint_length_days = Column(Integer, nullable=False, default=14)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)


class SprintRow(Base):
    __tablename__ = "sprints"

    id = Column(String(32), primary_key=True, default=_new_id)
    workspace_id = Column(String(32), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    state = Column(String(20), nullable=False, default=SprintState.ACTIVE.value)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True, default=_new_id)
    sprint_id = Column(String(32), ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True)
    summary = Column(String(500), nullable=False)
    status = Column(String(50), nullable=False, default="To Do")
    order = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    estimate = Column(Float, nullable=True)
    blocked = Column(Boolean, nullable=False, default=False)
    links = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now(), nullable=False)


class SpilloverRow(Base):
    """Cached spillover record; one per (sprint, task)."""

    __tablename__ = "spillovers"
    __table_args__ = (UniqueConstraint("sprint_id", "task_id", name="uq_spillover_sprint_task"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    sprint_id = Column(String(32), ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(String(32), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    spillover_days = Column(Integer, nullable=False, default=0)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class SprintInsightRow(Base):
    """Output of the analysis service for a sprint."""

    __tablename__ = "sprint_insights"

    id = Column(String(32), primary_key=True, default=_new_id)
    sprint_id = Column(String(32), ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True)
    summary = Column(Text, nullable=False)
    spillover_notes = Column(JSON, default=list)  # [{taskSummary, reason}]
    provider = Column(String(50), nullable=False)
    model = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)


# ── Row → model mapping ──


def _workspace(row: WorkspaceRow) -> Workspace:
    return Workspace(id=row.id, name=row.name, sprint_length_days=row.sprint_length_days)


def _sprint(row: SprintRow) -> Sprint:
    return Sprint(
        id=row.id,
        name=row.name,
        state=row.state,
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        workspace_id=row.workspace_id,
    )


def _task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        sprint_id=row.sprint_id,
        summary=row.summary,
        status=row.status,
        order=row.order,
        start_date=as_utc(row.start_date),
        end_date=as_utc(row.end_date),
        estimate=row.estimate,
        blocked=row.blocked,
        links=row.links,
        resolved_at=as_utc(row.resolved_at),
    )


def _spillover(row: SpilloverRow) -> Spillover:
    return Spillover(
        id=row.id,
        task_id=row.task_id,
        sprint_id=row.sprint_id,
        spillover_days=row.spillover_days,
        resolved_at=as_utc(row.resolved_at),
    )


def _insight(row: SprintInsightRow) -> SprintInsight:
    return SprintInsight(
        id=row.id,
        sprint_id=row.sprint_id,
        summary=row.summary,
        spillover_classifications=[SpilloverNote.model_validate(n) for n in row.spillover_notes or []],
        provider=row.provider,
        model=row.model,
        created_at=as_utc(row.created_at) or utcnow(),
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ── Store Class ──


class SqlSprintStore:
    """Async SQL store for sprint board data. Satisfies ``SprintRepository``."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url or settings.database_url
        engine_kwargs = {"echo": False}
        if self._url.startswith("postgresql"):
            engine_kwargs.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
        self._engine = create_async_engine(self._url, **engine_kwargs)
        if self._url.startswith("sqlite"):
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    async def init_db(self) -> None:
        """Create all tables if they don't exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Sprint store initialized (%s)", self._engine.url.get_backend_name())

    async def disconnect(self) -> None:
        """Dispose of the engine connection pool."""
        await self._engine.dispose()
        logger.info("Sprint store connection closed")

    def session(self) -> AsyncSession:
        """Get a new async session."""
        return self._session_factory()

    async def clear(self) -> None:
        """Delete every row, children first."""
        async with self.session() as session:
            for table in (SpilloverRow, SprintInsightRow, TaskRow, SprintRow, WorkspaceRow):
                await session.execute(delete(table))
            await session.commit()
        logger.warning("Sprint store cleared")

    # ── Workspaces ──

    async def list_workspaces(self) -> list[Workspace]:
        async with self.session() as session:
            rows = (await session.execute(select(WorkspaceRow).order_by(WorkspaceRow.created_at))).scalars()
            return [_workspace(r) for r in rows]

    async def get_workspace(self, workspace_id: str) -> Workspace | None:
        async with self.session() as session:
            row = await session.get(WorkspaceRow, workspace_id)
            return _workspace(row) if row else None

    @retry_on_database_error()
    async def create_workspace(self, data: WorkspaceCreate) -> Workspace:
        async with self.session() as session:
            row = WorkspaceRow(name=data.name.strip(), sprint_length_days=data.sprint_length_days)
            session.add(row)
            await session.commit()
            logger.info("Workspace created: %s (id=%s)", row.name, row.id)
            return _workspace(row)

    @retry_on_database_error()
    async def update_workspace(self, workspace_id: str, patch: WorkspacePatch) -> Workspace:
        days = patch.sprint_length_days
        if days is not None and days not in SPRINT_LENGTH_CHOICES:
            raise InvalidFieldError("sprint_length_days must be 7 or 14")
        async with self.session() as session:
            row = await session.get(WorkspaceRow, workspace_id)
            if row is None:
                raise NotFoundError("Workspace", workspace_id)
            if days is not None:
                row.sprint_length_days = days
                await session.commit()
                logger.info("Workspace %s sprint length set to %d days", workspace_id, days)
            return _workspace(row)

    # ── Sprints ──

    async def list_sprints(self) -> list[SprintSummary]:
        """All sprints, newest first, with task counts."""
        task_counts = (
            select(TaskRow.sprint_id, func.count(TaskRow.id).label("n"))
            .group_by(TaskRow.sprint_id)
            .subquery()
        )
        stmt = (
            select(SprintRow, func.coalesce(task_counts.c.n, 0))
            .outerjoin(task_counts, task_counts.c.sprint_id == SprintRow.id)
            .order_by(SprintRow.start_date.desc())
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return [SprintSummary(sprint=_sprint(row), task_count=count) for row, count in result.all()]

    async def get_sprint(self, sprint_id: str) -> Sprint | None:
        async with self.session() as session:
            row = await session.get(SprintRow, sprint_id)
            return _sprint(row) if row else None

    async def list_workspace_sprints(self, workspace_id: str) -> list[Sprint]:
        """Sprints of a workspace ordered by start date."""
        async with self.session() as session:
            rows = (
                await session.execute(
                    select(SprintRow)
                    .where(SprintRow.workspace_id == workspace_id)
                    .order_by(SprintRow.start_date.asc())
                )
            ).scalars()
            return [_sprint(r) for r in rows]

    @retry_on_database_error()
    async def create_sprint(self, data: SprintCreate) -> Sprint:
        """Create a sprint; ``end_date`` defaults to start + workspace sprint length."""
        async with self.session() as session:
            workspace = await session.get(WorkspaceRow, data.workspace_id)
            if workspace is None:
                raise NotFoundError("Workspace", data.workspace_id)
            end_date = data.end_date
            if end_date is None:
                length = workspace.sprint_length_days or settings.default_sprint_length_days
                end_date = data.start_date + timedelta(days=length)
            if data.start_date >= end_date:
                raise InvalidFieldError("Sprint start_date must be before end_date")

            row = SprintRow(
                workspace_id=data.workspace_id,
                name=data.name,
                state=data.state.value,
                start_date=data.start_date,
                end_date=end_date,
            )
            session.add(row)
            await session.commit()
            logger.info("Sprint created: %s (id=%s) %s..%s", row.name, row.id, data.start_date.date(), end_date.date())
            return _sprint(row)

    @retry_on_database_error()
    async def update_sprint(self, sprint_id: str, patch: SprintPatch, now: datetime | None = None) -> Sprint:
        """Apply a partial update.

        Dates may only change before the sprint has closed, and must keep
        ``start_date < end_date``.
        """
        async with self.session() as session:
            row = await session.get(SprintRow, sprint_id)
            if row is None:
                raise NotFoundError("Sprint", sprint_id)
            current = _sprint(row)
            changes = patch.model_dump(exclude_unset=True, exclude_none=True)

            if patch.touches_dates:
                if current.is_closed or current.has_elapsed(now or utcnow()):
                    raise InvalidFieldError("Dates of a closed sprint cannot be changed")
                start = changes.get("start_date", current.start_date)
                end = changes.get("end_date", current.end_date)
                if start >= end:
                    raise InvalidFieldError("Sprint start_date must be before end_date")

            if "name" in changes:
                name = changes["name"].strip()
                if not name:
                    raise InvalidFieldError("Sprint name cannot be blank")
                changes["name"] = name
            if "state" in changes:
                changes["state"] = SprintState(changes["state"]).value

            for key, value in changes.items():
                setattr(row, key, value)
            await session.commit()
            logger.info("Sprint %s updated: %s", sprint_id, ", ".join(sorted(changes)) or "(no changes)")
            return _sprint(row)

    @retry_on_database_error()
    async def close_if_elapsed(self, sprint_id: str, now: datetime | None = None) -> Sprint | None:
        """Mark an active sprint closed once its end date has passed."""
        now = now or utcnow()
        async with self.session() as session:
            row = await session.get(SprintRow, sprint_id)
            if row is None:
                return None
            sprint = _sprint(row)
            if sprint.state == SprintState.ACTIVE and sprint.has_elapsed(now):
                row.state = SprintState.CLOSED.value
                await session.commit()
                logger.info("Sprint %s closed (ended %s)", sprint_id, sprint.end_date.isoformat())
                return _sprint(row)
            return sprint

    # ── Tasks ──

    async def list_tasks(self, sprint_id: str) -> list[Task]:
        async with self.session() as session:
            rows = (
                await session.execute(
                    select(TaskRow).where(TaskRow.sprint_id == sprint_id).order_by(TaskRow.order.asc(), TaskRow.id)
                )
            ).scalars()
            return [_task(r) for r in rows]

    async def get_task(self, task_id: str) -> Task | None:
        async with self.session() as session:
            row = await session.get(TaskRow, task_id)
            return _task(row) if row else None

    @retry_on_database_error()
    async def create_task(self, data: TaskCreate) -> Task:
        """Create a task at the end of its sprint unless ``order`` is given."""
        if data.start_date and data.end_date and data.start_date > data.end_date:
            raise InvalidFieldError("Task start_date must not be after end_date")
        async with self.session() as session:
            if await session.get(SprintRow, data.sprint_id) is None:
                raise NotFoundError("Sprint", data.sprint_id)
            order = data.order
            if order is None:
                result = await session.execute(
                    select(func.max(TaskRow.order)).where(TaskRow.sprint_id == data.sprint_id)
                )
                order = (result.scalar() or 0) + 1
            resolved_at = data.resolved_at
            if resolved_at is None and is_done_status(data.status):
                resolved_at = utcnow()

            row = TaskRow(
                sprint_id=data.sprint_id,
                summary=data.summary,
                status=data.status,
                order=order,
                start_date=data.start_date,
                end_date=data.end_date,
                estimate=data.estimate,
                blocked=data.blocked,
                links=data.links,
                resolved_at=resolved_at,
            )
            session.add(row)
            await session.commit()
            logger.info("Task created in sprint %s: %s (id=%s)", data.sprint_id, row.summary, row.id)
            return _task(row)

    @retry_on_database_error()
    async def update_task(self, task_id: str, patch: TaskPatch, now: datetime | None = None) -> Task:
        """Apply a partial update.

        Moving to a done-equivalent status stamps ``resolved_at``; moving away
        from one clears it. Changing ``sprint_id`` moves the task without
        touching its dates.
        """
        async with self.session() as session:
            row = await session.get(TaskRow, task_id)
            if row is None:
                raise NotFoundError("Task", task_id)
            changes = patch.changes()

            start = changes.get("start_date", as_utc(row.start_date))
            end = changes.get("end_date", as_utc(row.end_date))
            if start is not None and end is not None and start > end:
                raise InvalidFieldError("Task start_date must not be after end_date")

            if "summary" in changes:
                if changes["summary"] is None or not changes["summary"].strip():
                    raise InvalidFieldError("Task summary cannot be blank")
                changes["summary"] = changes["summary"].strip()
            if "links" in changes:
                links = changes["links"]
                changes["links"] = links.strip() if links and links.strip() else None
            if changes.get("sprint_id") and changes["sprint_id"] != row.sprint_id:
                if await session.get(SprintRow, changes["sprint_id"]) is None:
                    raise NotFoundError("Sprint", changes["sprint_id"])
            if "status" in changes:
                status = changes["status"]
                if not status:
                    raise InvalidFieldError("Task status cannot be blank")
                was_done = is_done_status(row.status)
                if is_done_status(status) and not was_done:
                    row.resolved_at = now or utcnow()
                elif not is_done_status(status):
                    row.resolved_at = None

            for key, value in changes.items():
                if value is None and key in ("sprint_id", "order", "blocked"):
                    continue
                setattr(row, key, value)
            await session.commit()
            logger.info("Task %s updated: %s", task_id, ", ".join(sorted(changes)) or "(no changes)")
            return _task(row)

    @retry_on_database_error()
    async def delete_task(self, task_id: str) -> None:
        async with self.session() as session:
            row = await session.get(TaskRow, task_id)
            if row is None:
                raise NotFoundError("Task", task_id)
            await session.execute(delete(SpilloverRow).where(SpilloverRow.task_id == task_id))
            await session.delete(row)
            await session.commit()
            logger.info("Task %s deleted", task_id)

    # ── Spillovers ──

    async def list_spillovers(self, sprint_id: str) -> list[Spillover]:
        async with self.session() as session:
            rows = (
                await session.execute(select(SpilloverRow).where(SpilloverRow.sprint_id == sprint_id))
            ).scalars()
            return [_spillover(r) for r in rows]

    @retry_on_database_error()
    async def insert_spillover(self, result: SpilloverResult) -> Spillover:
        async with self.session() as session:
            row = SpilloverRow(
                sprint_id=result.sprint_id,
                task_id=result.task_id,
                spillover_days=result.spillover_days,
                resolved_at=result.resolved_at,
            )
            session.add(row)
            await session.commit()
            return _spillover(row)

    @retry_on_database_error()
    async def update_spillover(self, spillover_id: str, spillover_days: int, resolved_at: datetime | None) -> None:
        async with self.session() as session:
            row = await session.get(SpilloverRow, spillover_id)
            if row is None:
                raise NotFoundError("Spillover", spillover_id)
            row.spillover_days = spillover_days
            row.resolved_at = resolved_at
            await session.commit()

    # ── Insights ──

    @retry_on_database_error()
    async def save_insight(
        self,
        sprint_id: str,
        summary: str,
        notes: list[SpilloverNote],
        provider: str,
        model: str | None = None,
    ) -> SprintInsight:
        async with self.session() as session:
            row = SprintInsightRow(
                sprint_id=sprint_id,
                summary=summary,
                spillover_notes=[n.model_dump(by_alias=True) for n in notes],
                provider=provider,
                model=model,
                created_at=utcnow(),
            )
            session.add(row)
            await session.commit()
            logger.info("Insight stored for sprint %s (provider=%s)", sprint_id, provider)
            return _insight(row)

    async def latest_insight(self, sprint_id: str) -> SprintInsight | None:
        async with self.session() as session:
            row = (
                await session.execute(
                    select(SprintInsightRow)
                    .where(SprintInsightRow.sprint_id == sprint_id)
                    .order_by(SprintInsightRow.created_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            return _insight(row) if row else None

    # ── Health ──

    async def health_check(self) -> bool:
        """Return True if the database is reachable."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Sprint store health check failed: %s", e)
            return False
