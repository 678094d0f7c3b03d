"""Demo data: one workspace with three two-week sprints from 7 Jan 2026."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sprintboard.memory.sql_store import SqlSprintStore
from sprintboard.models.schemas import SprintCreate, TaskCreate, Workspace, WorkspaceCreate
from sprintboard.models.status import is_done_status

logger = logging.getLogger(__name__)

DEMO_WORKSPACE = "Sprint Planner Demo"

# (name, start, end)
DEMO_SPRINTS = [
    ("Q1 Sprint 1: Discovery & Foundation", "2026-01-07", "2026-01-20"),
    ("Q1 Sprint 2: Core Features", "2026-01-21", "2026-02-03"),
    ("Q1 Sprint 3: Polish & Launch", "2026-02-04", "2026-02-17"),
]

# (start offset, end offset, summary, status) per sprint, offsets in days
DEMO_TASKS = [
    [
        (0, 3, "User research and persona definition", "Done"),
        (1, 5, "Set up design system and component library", "Done"),
        (3, 8, "Implement SSO and role-based access control", "In Progress"),
        (5, 10, "Database schema design and migrations", "In Progress"),
        (6, 12, "API contract design and OpenAPI spec", "To Do"),
        (8, 14, "CI pipeline and staging environment setup", "To Do"),
    ],
    [
        (0, 4, "REST API for projects and tasks", "In Progress"),
        (2, 6, "Dashboard and analytics endpoints", "In Progress"),
        (4, 9, "Frontend: project list and detail views", "In Progress"),
        (5, 11, "Real-time notifications with WebSockets", "To Do"),
        (7, 12, "Search and filter across entities", "To Do"),
        (9, 14, "Unit and integration test coverage", "To Do"),
    ],
    [
        (0, 3, "Performance audit and query optimization", "To Do"),
        (1, 5, "Accessibility review and WCAG fixes", "To Do"),
        (3, 8, "Documentation and runbooks", "To Do"),
        (4, 10, "Security scan and dependency updates", "To Do"),
        (6, 12, "Launch checklist and go-live runbook", "To Do"),
        (8, 14, "Post-launch monitoring and alerting", "To Do"),
    ],
]


def _day(iso: str) -> datetime:
    return datetime.fromisoformat(iso).replace(tzinfo=timezone.utc)


async def seed_demo(store: SqlSprintStore, reset: bool = True) -> Workspace:
    """Load the demo workspace. With ``reset`` all existing data is removed first."""
    if reset:
        logger.info("Cleaning existing data...")
        await store.clear()

    workspace = await store.create_workspace(WorkspaceCreate(name=DEMO_WORKSPACE, sprint_length_days=14))
    for (name, start, end), task_defs in zip(DEMO_SPRINTS, DEMO_TASKS):
        sprint_start = _day(start)
        sprint = await store.create_sprint(
            SprintCreate(workspace_id=workspace.id, name=name, start_date=sprint_start, end_date=_day(end))
        )
        for order, (first, last, summary, status) in enumerate(task_defs, start=1):
            await store.create_task(TaskCreate(
                sprint_id=sprint.id,
                summary=summary,
                status=status,
                order=order,
                start_date=sprint_start + timedelta(days=first),
                end_date=sprint_start + timedelta(days=last),
                estimate=(last - first) * 2,
                resolved_at=sprint_start + timedelta(days=last) if is_done_status(status) else None,
            ))

    logger.info(
        "Seed complete: 1 workspace, %d sprints (2 weeks each from %s)",
        len(DEMO_SPRINTS), DEMO_SPRINTS[0][1],
    )
    return workspace
