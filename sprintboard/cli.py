"""Command-line interface for the sprint board.

This module provides the 'sprintboard' command: running the API server,
preparing the database and inspecting sprints from the terminal.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click
import httpx
from click import echo, style

from sprintboard import __version__
from sprintboard.config import settings
from sprintboard.exceptions import NotFoundError
from sprintboard.integrations.dashboard_client import DashboardClient
from sprintboard.logging_config import setup_logging
from sprintboard.models.schemas import HealthBand, SprintDetail
from sprintboard.timeline.drag import DragMode
from sprintboard.timeline.geometry import day_width
from sprintboard.timeline.view import BarColor, TimelineBar, TimelineView

_BAND_COLORS = {
    HealthBand.HEALTHY: "green",
    HealthBand.AT_RISK: "yellow",
    HealthBand.CRITICAL: "red",
}

_BAR_GLYPHS = {
    BarColor.SPILLOVER: "!",
    BarColor.DONE: "=",
    BarColor.IN_PROGRESS: "#",
    BarColor.REVIEW: "%",
    BarColor.BLOCKED: "x",
    BarColor.TODO: "-",
}

_LABEL_WIDTH = 32


def _unreachable(client: DashboardClient) -> None:
    echo(style(f"Sprint board API unreachable at {client.base_url}. Start it with: sprintboard serve", fg="yellow"), err=True)
    sys.exit(1)


def _fetch_detail(client: DashboardClient, sprint_id: str) -> SprintDetail:
    try:
        return asyncio.run(client.get_sprint(sprint_id))
    except NotFoundError as e:
        echo(style(str(e), fg="red"), err=True)
        sys.exit(1)
    except (httpx.ConnectError, httpx.TimeoutException, OSError):
        _unreachable(client)
    except httpx.HTTPStatusError as e:
        echo(style(f"API error (HTTP {e.response.status_code})", fg="red"), err=True)
        sys.exit(1)


def render_bar(bar: TimelineBar, width: int) -> str:
    """One text row: truncated label then the bar drawn on a ``width``-wide track."""
    label = bar.task.summary
    if len(label) > _LABEL_WIDTH - 1:
        label = label[: _LABEL_WIDTH - 2] + "…"
    track = [" "] * width
    if bar.visible:
        first = min(width - 1, max(0, int(bar.geometry.x)))
        last = min(width, max(first + 1, int(round(bar.geometry.right))))
        for i in range(first, last):
            track[i] = _BAR_GLYPHS[bar.color]
    return f"{label:<{_LABEL_WIDTH}}|{''.join(track)}|"


def render_timeline(view: TimelineView) -> list[str]:
    width = int(view.track_width)
    lines = []
    header = [" "] * width
    cell = day_width(view.range_start, view.range_end, width)
    for i, day in enumerate(view.day_labels()):
        pos = int(i * cell)
        if pos < width and (i % 2 == 0 or cell >= 6):
            text = day.label.split(" ")[0]
            for j, ch in enumerate(text):
                if pos + j < width:
                    header[pos + j] = ch
    lines.append(f"{'':<{_LABEL_WIDTH}} {''.join(header)}")
    lines.extend(render_bar(bar, width) for bar in view.bars())
    marker = view.today_x()
    if marker is not None:
        pad = " " * min(width - 1, int(marker))
        lines.append(f"{'':<{_LABEL_WIDTH}} {pad}^ today")
    return lines


# ── Commands ──


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Sprint board - sprint timeline, spillover tracking and health scoring."""
    if version:
        echo(f"sprintboard v{__version__}")
        return
    if ctx.invoked_subcommand is None:
        echo(ctx.get_help())


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run("sprintboard.main:app", host=host, port=port, reload=reload, log_config=None)


@cli.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    from sprintboard.memory.sql_store import SqlSprintStore

    async def run() -> None:
        store = SqlSprintStore()
        try:
            await store.init_db()
        finally:
            await store.disconnect()

    asyncio.run(run())
    echo(f"Tables created in {settings.database_url}")


@cli.command()
@click.option("--keep", is_flag=True, help="Keep existing data instead of wiping it")
def seed(keep: bool) -> None:
    """Load the demo workspace with three two-week sprints."""
    from sprintboard.memory.seed import DEMO_SPRINTS, seed_demo
    from sprintboard.memory.sql_store import SqlSprintStore

    async def run() -> str:
        store = SqlSprintStore()
        try:
            await store.init_db()
            workspace = await seed_demo(store, reset=not keep)
            return workspace.id
        finally:
            await store.disconnect()

    workspace_id = asyncio.run(run())
    echo(f"Seeded workspace {workspace_id} with {len(DEMO_SPRINTS)} sprints")


@cli.command()
@click.argument("sprint_id")
@click.option("--api", "api_url", default=None, help="Sprint board API URL")
def health(sprint_id: str, api_url: Optional[str]) -> None:
    """Show the health score of a sprint."""
    client = DashboardClient(api_url)
    detail = _fetch_detail(client, sprint_id)
    h = detail.health

    echo(style(detail.sprint.name, bold=True))
    echo(f"  Window:     {detail.sprint.start_date.date()} .. {detail.sprint.end_date.date()} ({detail.sprint.state.value})")
    echo("  Health:     " + style(f"{h.score} ({h.band.value})", fg=_BAND_COLORS[h.band]))
    echo(f"  Completed:  {h.completed_count}/{h.total_count} tasks")
    echo(f"  Spillovers: {h.spillover_count} ({h.spillover_days} days)")
    if h.blocked_count:
        echo(style(f"  Blocked:    {h.blocked_count} tasks", fg="yellow"))


@cli.command()
@click.argument("sprint_id")
@click.option("--width", default=56, type=int, help="Track width in characters")
@click.option("--api", "api_url", default=None, help="Sprint board API URL")
def timeline(sprint_id: str, width: int, api_url: Optional[str]) -> None:
    """Draw the sprint's Gantt timeline as text."""
    client = DashboardClient(api_url)
    detail = _fetch_detail(client, sprint_id)
    view = TimelineView.from_read_model(detail, client.as_committer(), track_width=width)

    echo(style(f"{detail.sprint.name}  [{detail.health.score} {detail.health.band.value}]", bold=True))
    for line in render_timeline(view):
        echo(line)


@cli.command()
@click.argument("sprint_id")
@click.argument("task_id")
@click.argument("days", type=float)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in DragMode]),
    default=DragMode.MOVE.value,
    help="move shifts the bar; resize_left and resize_right move one edge",
)
@click.option("--api", "api_url", default=None, help="Sprint board API URL")
def shift(sprint_id: str, task_id: str, days: float, mode: str, api_url: Optional[str]) -> None:
    """Drag a task bar by DAYS and save the new dates."""
    client = DashboardClient(api_url)
    detail = _fetch_detail(client, sprint_id)
    if detail.task(task_id) is None:
        echo(style(f"Task {task_id} is not in sprint {sprint_id}", fg="red"), err=True)
        sys.exit(1)

    async def run() -> TimelineView | None:
        view = TimelineView.from_read_model(
            detail, client.as_committer(), track_width=settings.chart_width, editable=True
        )
        controller = view.controller(task_id)
        start_x = controller.committed.x
        if not controller.press(DragMode(mode), start_x):
            return None
        controller.move(start_x + days * day_width(view.range_start, view.range_end, view.track_width))
        controller.release()
        await view.drain()
        return view

    view = asyncio.run(run())
    if view is None:
        echo(style(f"Task {task_id} has no dates to drag", fg="yellow"), err=True)
        sys.exit(1)

    for notice in view.notices:
        echo(style(f"{notice.message}: {notice.error}", fg="red"), err=True)
    if view.notices:
        sys.exit(1)
    task = view.task(task_id)
    echo(f"{task.summary}: {task.start_date.date()} .. {task.end_date.date()}")


def main() -> None:
    """Entry point for the CLI."""
    setup_logging()
    cli()


if __name__ == "__main__":
    main()
