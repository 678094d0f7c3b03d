"""Spillover detection and idempotent persistence.

A task *spills over* when its sprint's window has elapsed and it either is
not done, or was resolved after the sprint ended. Detection is a pure function
of the sprint end date, task status/resolution and the current time; it is
re-run on every read and its output upserted so the rows stay stable.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from sprintboard import metrics
from sprintboard.memory.repository import SprintRepository
from sprintboard.models.schemas import SpilloverResult, Sprint, Task, utcnow

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)


def _ceil_days(delta: timedelta) -> int:
    return max(0, math.ceil(delta / DAY))


def spillover_days_for(task: Task, sprint_end: datetime, now: datetime) -> int | None:
    """Days ``task`` overran ``sprint_end``, or None if it did not spill over."""
    resolved_after_end = task.resolved_at is not None and task.resolved_at > sprint_end
    if task.is_done and not resolved_after_end:
        return None

    if resolved_after_end:
        return _ceil_days(task.resolved_at - sprint_end)
    if not task.is_done:
        # Still open: grows by one every day past the end.
        return _ceil_days(now - sprint_end)
    return 0


def detect_spillovers(
    sprint: Sprint,
    tasks: Iterable[Task],
    now: datetime | None = None,
) -> list[SpilloverResult]:
    """Spillovers for ``sprint``; empty while the sprint window is still open.

    The sprint's ``state`` is not consulted: a sprint still reading "active"
    after its end date is treated as elapsed.
    """
    now = now or utcnow()
    if sprint.end_date >= now:
        return []

    results = []
    for task in tasks:
        days = spillover_days_for(task, sprint.end_date, now)
        if days is None:
            continue
        results.append(SpilloverResult(
            task_id=task.id,
            sprint_id=sprint.id,
            spillover_days=days,
            resolved_at=task.resolved_at,
        ))
    return results


# ── Upsert ──


@dataclass
class UpsertFailure:
    task_id: str
    error: str


@dataclass
class UpsertReport:
    """Outcome of one upsert pass over a sprint's detected spillovers."""

    sprint_id: str
    inserted: int = 0
    updated: int = 0
    failures: list[UpsertFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + len(self.failures)


async def upsert_spillovers(
    repository: SprintRepository,
    sprint_id: str,
    detected: Iterable[SpilloverResult],
) -> UpsertReport:
    """Write ``detected`` into the sprint's spillover rows.

    Existing rows (keyed by task id) are updated, new ones inserted. Rows for
    tasks that no longer qualify are left as they are. A failing row is
    recorded in the report and does not stop the remaining rows.
    """
    existing = {row.task_id: row for row in await repository.list_spillovers(sprint_id)}
    report = UpsertReport(sprint_id=sprint_id)

    for result in detected:
        current = existing.get(result.task_id)
        try:
            if current is not None:
                await repository.update_spillover(current.id, result.spillover_days, result.resolved_at)
                report.updated += 1
            else:
                row = await repository.insert_spillover(result)
                existing[result.task_id] = row
                report.inserted += 1
        except Exception as e:
            logger.warning("Spillover upsert failed for task %s in sprint %s: %s", result.task_id, sprint_id, e)
            report.failures.append(UpsertFailure(task_id=result.task_id, error=str(e)))
            metrics.spillover_upserts_total.labels(outcome="failed").inc()
        else:
            metrics.spillover_upserts_total.labels(outcome="ok").inc()

    if report.failures:
        logger.error(
            "Spillover upsert for sprint %s: %d/%d rows failed",
            sprint_id, len(report.failures), report.processed,
        )
    else:
        logger.debug("Spillover upsert for sprint %s: %d inserted, %d updated", sprint_id, report.inserted, report.updated)
    return report


async def ensure_spillover_records(
    repository: SprintRepository,
    sprint_id: str,
    now: datetime | None = None,
) -> UpsertReport:
    """Detect spillovers for a sprint and upsert them. Safe to call on every read."""
    sprint = await repository.get_sprint(sprint_id)
    if sprint is None:
        return UpsertReport(sprint_id=sprint_id)
    tasks = await repository.list_tasks(sprint_id)
    detected = detect_spillovers(sprint, tasks, now)
    return await upsert_spillovers(repository, sprint_id, detected)
