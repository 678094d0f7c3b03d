"""Sprint analysis through a local Ollama server.

The analysis service gets a compact snapshot of a sprint (counts, health,
task list, spillover summaries) and answers with a short retrospective plus a
reason for each spillover. Only non-streaming ``/api/generate`` is used.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Iterable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from sprintboard import metrics
from sprintboard.config import settings
from sprintboard.exceptions import AnalysisUnavailable
from sprintboard.models.schemas import Spillover, SpilloverNote, Sprint, SprintHealth, Task
from sprintboard.retry import retry_on_http_error

logger = logging.getLogger(__name__)

_RAW_FALLBACK_CHARS = 500
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")

SPILLOVER_REASONS = (
    "blocked dependency",
    "underestimated",
    "overloaded assignee",
    "scope creep",
    "other",
)


# ── Models ──


class SnapshotTask(BaseModel):
    summary: str
    status: str
    blocked: bool = False


class AnalysisSnapshot(BaseModel):
    """Everything the analysis prompt is built from."""

    sprint_name: str
    start_date: str
    end_date: str
    state: str
    task_count: int
    completed_count: int
    spillover_count: int
    health_score: int
    health_band: str
    tasks: list[SnapshotTask] = Field(default_factory=list)
    spillover_task_summaries: list[str] = Field(default_factory=list)

    @property
    def completed_pct(self) -> int:
        if self.task_count == 0:
            return 0
        return int(self.completed_count * 100 / self.task_count + 0.5)


class AnalysisResult(BaseModel):
    summary: str
    spillover_classifications: list[SpilloverNote] = Field(
        default_factory=list, alias="spilloverClassifications"
    )

    model_config = ConfigDict(populate_by_name=True)


# ── Snapshot / prompt / parsing ──


def build_analysis_snapshot(
    sprint: Sprint,
    tasks: Iterable[Task],
    spillovers: Iterable[Spillover],
    health: SprintHealth,
) -> AnalysisSnapshot:
    tasks = list(tasks)
    summaries = {t.id: t.summary for t in tasks}
    spillovers = list(spillovers)
    return AnalysisSnapshot(
        sprint_name=sprint.name,
        start_date=sprint.start_date.date().isoformat(),
        end_date=sprint.end_date.date().isoformat(),
        state=sprint.state.value,
        task_count=len(tasks),
        completed_count=sum(1 for t in tasks if t.is_done),
        spillover_count=len(spillovers),
        health_score=health.score,
        health_band=health.band.value,
        tasks=[SnapshotTask(summary=t.summary, status=t.status, blocked=t.blocked) for t in tasks],
        spillover_task_summaries=[summaries.get(s.task_id, "Unknown") for s in spillovers],
    )


def build_prompt(snapshot: AnalysisSnapshot) -> str:
    lines = [
        "You are a sprint analyst. Analyze this sprint and respond in JSON only.",
        "",
        f"Sprint: {snapshot.sprint_name}",
        f"Period: {snapshot.start_date} to {snapshot.end_date}",
        f"State: {snapshot.state}",
        f"Tasks: {snapshot.task_count} total, {snapshot.completed_count} done ({snapshot.completed_pct}%)",
        f"Health: {snapshot.health_score} ({snapshot.health_band})",
        f"Spillovers: {snapshot.spillover_count}",
    ]
    if snapshot.spillover_task_summaries:
        lines.append("Spillover tasks: " + ", ".join(snapshot.spillover_task_summaries))
    lines += ["", "Task list:"]
    for task in snapshot.tasks:
        lines.append(f"- {task.summary} [{task.status}]" + (" (blocked)" if task.blocked else ""))
    lines += [
        "",
        "Respond with a single JSON object only, no markdown:",
        "{",
        '  "summary": "2-4 sentence retrospective: what went well, what caused spillover or risk, '
        'and one concrete recommendation.",',
        '  "spilloverClassifications": [{"taskSummary": "task name", "reason": "one of: '
        + " | ".join(SPILLOVER_REASONS) + '"}]',
        "}",
        "If there are no spillovers, spilloverClassifications can be [].",
    ]
    return "\n".join(lines) + "\n"


def parse_analysis_response(raw: str) -> AnalysisResult:
    """Parse the model's answer; never raises.

    The first ``{...}`` block is decoded. On invalid JSON the first 500 raw
    characters become the summary.
    """
    trimmed = raw.strip()
    match = _JSON_BLOCK.search(trimmed)
    candidate = match.group(0) if match else trimmed
    try:
        parsed = json.loads(candidate)
        if not isinstance(parsed, dict):
            raise ValueError("analysis response is not a JSON object")
        notes = []
        for item in parsed.get("spilloverClassifications") or []:
            try:
                notes.append(SpilloverNote.model_validate(item))
            except ValueError:
                logger.debug("Skipping malformed spillover classification: %r", item)
        return AnalysisResult(
            summary=parsed.get("summary") or "No summary generated.",
            spillover_classifications=notes,
        )
    except ValueError:
        return AnalysisResult(
            summary=raw[:_RAW_FALLBACK_CHARS] or "Analysis completed but response was not valid JSON.",
        )


# ── Client ──


class OllamaClient:
    """Sprint analysis provider backed by Ollama."""

    name = "ollama"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout = httpx.Timeout(settings.ollama_timeout_seconds, connect=5.0)
        self._transport = transport

    @retry_on_http_error()
    async def _generate(self, prompt: str) -> str:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                "/api/generate",
                json={"model": self.model, "prompt": prompt, "stream": False},
            )
            if resp.status_code >= 400:
                raise AnalysisUnavailable(f"Ollama error {resp.status_code}: {resp.text}")
            try:
                body = resp.json()
            except ValueError as e:
                raise AnalysisUnavailable("Ollama returned a body that is not JSON") from e
            if not isinstance(body, dict):
                raise AnalysisUnavailable("Ollama returned an unexpected response shape")
            return body.get("response") or ""

    async def analyze_sprint(self, snapshot: AnalysisSnapshot) -> AnalysisResult:
        """Send the snapshot prompt and parse the answer.

        Raises:
            AnalysisUnavailable: if Ollama is unreachable or answers with an error
        """
        start = time.perf_counter()
        try:
            raw = await self._generate(build_prompt(snapshot))
        except httpx.TransportError as e:
            metrics.analysis_requests_total.labels(provider=self.name, status="unreachable").inc()
            logger.error("Ollama unreachable at %s: %s", self.base_url, e)
            raise AnalysisUnavailable(f"Ollama not reachable at {self.base_url}") from e
        except AnalysisUnavailable:
            metrics.analysis_requests_total.labels(provider=self.name, status="error").inc()
            raise
        finally:
            metrics.analysis_duration_seconds.labels(provider=self.name).observe(time.perf_counter() - start)

        metrics.analysis_requests_total.labels(provider=self.name, status="ok").inc()
        result = parse_analysis_response(raw)
        logger.info(
            "Sprint '%s' analyzed by %s/%s: %d spillover notes",
            snapshot.sprint_name, self.name, self.model, len(result.spillover_classifications),
        )
        return result


def get_analysis_provider() -> OllamaClient | None:
    """The configured analysis provider, or None when analysis is switched off."""
    if not settings.has_analysis:
        return None
    return OllamaClient()
