"""Storage port consumed by the analytics layer.

The analytics code never reaches for a global store; it is handed something
that satisfies ``SprintRepository``. ``SqlSprintStore`` is the production
implementation; tests use an in-memory one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sprintboard.models.schemas import Spillover, SpilloverResult, Sprint, Task


class SprintRepository(Protocol):
    """Read access to sprints/tasks plus write access to spillover rows."""

    async def get_sprint(self, sprint_id: str) -> Sprint | None: ...

    async def list_tasks(self, sprint_id: str) -> list[Task]: ...

    async def list_spillovers(self, sprint_id: str) -> list[Spillover]: ...

    async def insert_spillover(self, result: SpilloverResult) -> Spillover: ...

    async def update_spillover(
        self, spillover_id: str, spillover_days: int, resolved_at: datetime | None
    ) -> None: ...
