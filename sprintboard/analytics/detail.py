"""Assembles the full sprint read used by the dashboard.

Reading a sprint has side effects: an elapsed active sprint is closed and its
spillover rows are refreshed before health is scored.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sprintboard.analytics.health import compute_sprint_health
from sprintboard.analytics.spillover import ensure_spillover_records
from sprintboard.exceptions import NotFoundError
from sprintboard.memory.sql_store import SqlSprintStore
from sprintboard.models.schemas import Sprint, SprintDetail, utcnow

logger = logging.getLogger(__name__)


def neighbour_ids(siblings: list[Sprint], sprint: Sprint, now: datetime) -> tuple[str | None, str | None]:
    """Previous and next sprint ids within the workspace, by start date.

    The next sprint is only offered when ``sprint`` is closed or elapsed.
    """
    ids = [s.id for s in siblings]
    if sprint.id not in ids:
        return None, None
    idx = ids.index(sprint.id)
    prev_id = ids[idx - 1] if idx > 0 else None
    viewing_closed = sprint.is_closed or sprint.has_elapsed(now)
    next_id = ids[idx + 1] if viewing_closed and idx < len(ids) - 1 else None
    return prev_id, next_id


async def get_sprint_detail(store: SqlSprintStore, sprint_id: str, now: datetime | None = None) -> SprintDetail:
    """Close-if-elapsed, refresh spillovers, score health and find neighbours.

    Raises:
        NotFoundError: if the sprint does not exist
    """
    now = now or utcnow()
    sprint = await store.close_if_elapsed(sprint_id, now)
    if sprint is None:
        raise NotFoundError("Sprint", sprint_id)

    report = await ensure_spillover_records(store, sprint_id, now)
    if not report.ok:
        logger.warning("Sprint %s read with %d stale spillover rows", sprint_id, len(report.failures))

    health = await compute_sprint_health(store, sprint_id)
    tasks = await store.list_tasks(sprint_id)
    spillovers = await store.list_spillovers(sprint_id)
    siblings = await store.list_workspace_sprints(sprint.workspace_id)
    prev_id, next_id = neighbour_ids(siblings, sprint, now)

    return SprintDetail(
        sprint=sprint,
        tasks=tasks,
        spillovers=spillovers,
        health=health,
        prev_sprint_id=prev_id,
        next_sprint_id=next_id,
    )
