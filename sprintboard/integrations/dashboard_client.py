"""HTTP client for the sprint board API.

Used by the CLI and by timeline hosts that persist drags through the API
instead of talking to the database directly.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sprintboard.config import settings
from sprintboard.exceptions import CommitError, NotFoundError
from sprintboard.models.schemas import (
    SprintDetail,
    SprintPatch,
    SprintSummary,
    Sprint,
    Task,
    TaskPatch,
)
from sprintboard.retry import retry_on_http_error
from sprintboard.timeline.view import TaskCommitter

logger = logging.getLogger(__name__)

# 5s connect (API is usually local), 30s read (sprint reads run the upsert pass)
_TIMEOUT = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0)


class DashboardClient:
    """Async HTTP client for the sprint board API."""

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = (base_url or settings.dashboard_url).rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=_TIMEOUT, transport=self._transport)

    @staticmethod
    def _check(resp: httpx.Response, kind: str, identifier: str) -> None:
        if resp.status_code == 404:
            raise NotFoundError(kind, identifier)
        resp.raise_for_status()

    # ── Sprints ──

    @retry_on_http_error()
    async def list_sprints(self) -> list[SprintSummary]:
        async with self._client() as client:
            resp = await client.get("/api/sprints")
            resp.raise_for_status()
            return [SprintSummary.model_validate(item) for item in resp.json()]

    @retry_on_http_error()
    async def get_sprint(self, sprint_id: str) -> SprintDetail:
        """Full sprint read (GET /api/sprints/{id})."""
        async with self._client() as client:
            resp = await client.get(f"/api/sprints/{sprint_id}")
            self._check(resp, "Sprint", sprint_id)
            return SprintDetail.model_validate(resp.json())

    async def patch_sprint(self, sprint_id: str, patch: SprintPatch) -> Sprint:
        async with self._client() as client:
            resp = await client.patch(
                f"/api/sprints/{sprint_id}",
                json=patch.model_dump(mode="json", exclude_unset=True),
            )
            self._check(resp, "Sprint", sprint_id)
            return Sprint.model_validate(resp.json())

    # ── Tasks ──

    async def patch_task(self, task_id: str, patch: TaskPatch) -> Task:
        """Send a partial task update (PATCH /api/tasks/{id})."""
        async with self._client() as client:
            resp = await client.patch(f"/api/tasks/{task_id}", json=patch.to_wire())
            self._check(resp, "Task", task_id)
            return Task.model_validate(resp.json())

    def as_committer(self) -> TaskCommitter:
        """Adapter for ``TimelineView``: any failure surfaces as ``CommitError``."""

        async def commit(task_id: str, patch: TaskPatch) -> Task:
            try:
                return await self.patch_task(task_id, patch)
            except (httpx.HTTPError, NotFoundError) as e:
                logger.warning("Task %s commit rejected by %s: %s", task_id, self.base_url, e)
                raise CommitError(f"Could not save task {task_id}: {e}") from e

        return commit

    # ── Health ──

    async def health(self) -> dict[str, Any]:
        """Service health (GET /health)."""
        async with self._client() as client:
            resp = await client.get("/health")
            resp.raise_for_status()
            return resp.json()

    async def is_reachable(self) -> bool:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(connect=3.0, read=5.0, write=3.0, pool=3.0),
                transport=self._transport,
            ) as client:
                resp = await client.get("/health")
                return resp.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException, OSError):
            return False
