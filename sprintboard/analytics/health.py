"""Sprint health scoring.

score = 100
      - (1 - completion_rate) * 30
      - spillover_count * 10
      - min(20, spillover_days * 2)
      - blocked_count * 5

rounded and clamped to 0..100; >=70 healthy, >=40 at risk, else critical.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sprintboard import metrics
from sprintboard.memory.repository import SprintRepository
from sprintboard.models.schemas import HealthBand, Spillover, SprintHealth, SpilloverResult, Task

logger = logging.getLogger(__name__)

COMPLETION_WEIGHT = 30
SPILLOVER_PENALTY = 10
SPILLOVER_DAY_PENALTY = 2
SPILLOVER_DAYS_CAP = 20
BLOCKED_PENALTY = 5

HEALTHY_THRESHOLD = 70
AT_RISK_THRESHOLD = 40


def classify_score(score: int) -> HealthBand:
    if score >= HEALTHY_THRESHOLD:
        return HealthBand.HEALTHY
    if score >= AT_RISK_THRESHOLD:
        return HealthBand.AT_RISK
    return HealthBand.CRITICAL


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; scores round .5 upwards
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def score_sprint_health(
    tasks: Iterable[Task],
    spillovers: Iterable[Spillover | SpilloverResult],
) -> SprintHealth:
    """Reduce a task/spillover snapshot to a score and band."""
    tasks = list(tasks)
    spillovers = list(spillovers)

    total_count = len(tasks)
    completed_count = sum(1 for t in tasks if t.is_done)
    blocked_count = sum(1 for t in tasks if t.blocked)
    spillover_count = len(spillovers)
    spillover_days = sum(s.spillover_days for s in spillovers)

    completion_rate = completed_count / total_count if total_count else 0.0

    raw = (
        100
        - (1 - completion_rate) * COMPLETION_WEIGHT
        - spillover_count * SPILLOVER_PENALTY
        - min(SPILLOVER_DAYS_CAP, spillover_days * SPILLOVER_DAY_PENALTY)
        - blocked_count * BLOCKED_PENALTY
    )
    score = max(0, min(100, _round_half_up(raw)))

    return SprintHealth(
        score=score,
        band=classify_score(score),
        spillover_count=spillover_count,
        spillover_days=spillover_days,
        completed_count=completed_count,
        total_count=total_count,
        blocked_count=blocked_count,
    )


async def compute_sprint_health(repository: SprintRepository, sprint_id: str) -> SprintHealth:
    """Score a persisted sprint from its tasks and stored spillover rows.

    A missing sprint yields ``SprintHealth.unknown()`` rather than an error.
    """
    sprint = await repository.get_sprint(sprint_id)
    if sprint is None:
        logger.info("Health requested for unknown sprint %s", sprint_id)
        return SprintHealth.unknown()

    tasks = await repository.list_tasks(sprint_id)
    spillovers = await repository.list_spillovers(sprint_id)
    health = score_sprint_health(tasks, spillovers)
    metrics.sprint_health_score.observe(health.score)

    logger.info(
        "Sprint %s health: %d (%s), %d/%d done, %d spillovers (%d days), %d blocked",
        sprint_id, health.score, health.band.value, health.completed_count, health.total_count,
        health.spillover_count, health.spillover_days, health.blocked_count,
    )
    return health
