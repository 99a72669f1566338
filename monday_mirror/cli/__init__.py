"""
Command Line Interface for Monday Mirror.
"""

import asyncio
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings, get_settings
from ..core.errors import SyncError
from ..core.health import HealthScorer, HealthThresholds
from ..core.orchestrator import SyncOrchestrator
from ..db.base import create_db_engine, get_session_local, init_database
from ..db.services import MirrorStore
from ..integrations.monday_api import MondayAPIClient, MondayClientError
from ..logging_config import configure_logging
from ..schemas.monday import SyncOptions

app = typer.Typer(help="Monday Mirror - local mirror of a monday.com organization")
console = Console()


class SyncStrategy(str, Enum):
    smart = "smart"
    full = "full"
    incremental = "incremental"
    workspace = "workspace"


STATUS_STYLES = {
    "healthy": "green",
    "warning": "yellow",
    "inactive": "magenta",
    "abandoned": "red",
}


@app.callback()
def setup():
    """Configure logging before any command runs."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)


@contextmanager
def open_store(settings: Settings) -> Iterator[MirrorStore]:
    """Yield a store on a fresh session, creating missing tables."""
    engine = create_db_engine(settings.database_url)
    init_database(engine)
    db = get_session_local(engine)()
    try:
        yield MirrorStore(db)
    finally:
        db.close()
        engine.dispose()


def _require_api_key(settings: Settings) -> None:
    if not settings.monday_api_key:
        console.print("[red]MONDAY_API_KEY is not set[/red]")
        raise typer.Exit(code=1)


def _fail(error: Exception) -> None:
    code = getattr(error, "code", type(error).__name__)
    console.print(f"[red]Sync failed ({code}):[/red] {error}")
    raise typer.Exit(code=1)


def _hours(value: float) -> str:
    return "never synced" if value == float("inf") else f"{value:.1f} h"


@app.command()
def sync(
    strategy: SyncStrategy = typer.Argument(SyncStrategy.smart, help="Sync strategy"),
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Workspace name for the workspace strategy"
    ),
    include_archived: Optional[bool] = typer.Option(
        None, "--include-archived/--active-only", help="Override INCLUDE_ARCHIVED for a full sync"
    ),
    dry_run: bool = typer.Option(False, help="Show what smart sync would do without syncing"),
):
    """Synchronize the mirror with monday.com."""
    settings = get_settings()

    if strategy is SyncStrategy.workspace and not workspace:
        console.print("[red]--workspace is required for the workspace strategy[/red]")
        raise typer.Exit(code=1)

    if dry_run:
        with open_store(settings) as store:
            orchestrator = SyncOrchestrator(None, store, settings)
            status = orchestrator.get_cache_status()
            planned = orchestrator.plan_smart_sync(status)
        if planned == "cached":
            planned = "none (mirror is fresh)"
        console.print(f"Cache age: {_hours(status.cache_age)}; smart sync would run: {planned}")
        return

    _require_api_key(settings)

    async def run():
        async with MondayAPIClient.from_settings(settings) as client:
            with open_store(settings) as store:
                orchestrator = SyncOrchestrator(client, store, settings)
                if strategy is SyncStrategy.full:
                    return await orchestrator.full_sync(
                        SyncOptions(include_archived=include_archived, force_refresh=True)
                    )
                if strategy is SyncStrategy.incremental:
                    return await orchestrator.incremental_sync()
                if strategy is SyncStrategy.workspace:
                    return await orchestrator.sync_scope(workspace)
                return await orchestrator.smart_sync()

    rprint(Panel.fit(f"Running {strategy.value} sync", style="bold blue"))
    try:
        org = asyncio.run(run())
    except (SyncError, MondayClientError) as e:
        _fail(e)

    console.print(
        f"✅ Mirror holds {len(org.workspaces)} workspaces, {len(org.boards)} boards, "
        f"{len(org.relationships)} relationships, {len(org.users)} users"
    )


@app.command()
def status():
    """Show mirror freshness and contents."""
    settings = get_settings()
    with open_store(settings) as store:
        cache = SyncOrchestrator(None, store, settings).get_cache_status()
        overview = store.get_organization_overview()
        stale = store.get_stale_counts()

    table = Table(title="Monday Mirror Status", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    table.add_row("Healthy", "🟢 yes" if cache.is_healthy else "🔴 no")
    table.add_row("Last sync", cache.last_sync.isoformat() if cache.last_sync else "-")
    table.add_row("Cache age", _hours(cache.cache_age))
    table.add_row("Needs refresh", "yes" if cache.needs_refresh else "no")
    table.add_row("Workspaces", str(overview["total_workspaces"]))
    table.add_row(
        "Boards",
        f"{overview['total_boards']} ({overview['active_boards']} active, "
        f"{overview['archived_boards']} archived)",
    )
    table.add_row("Items", str(overview["total_items"]))
    table.add_row("Users", str(overview["total_users"]))
    table.add_row("Stale", f"{stale['workspaces']} workspaces, {stale['boards']} boards")

    console.print(table)


@app.command()
def health(
    workspace: Optional[str] = typer.Option(None, help="Workspace id to report on"),
    refresh_cache: bool = typer.Option(
        False, "--refresh-cache", help="Write fresh scores to the stored health columns"
    ),
):
    """Score board and workspace health from the mirror."""
    settings = get_settings()
    scorer = HealthScorer(HealthThresholds.from_settings(settings))

    with open_store(settings) as store:
        org = store.get_organizational_structure()
        if refresh_cache:
            updated = SyncOrchestrator(None, store, settings, scorer=scorer).refresh_health_cache()
            console.print(f"Updated health cache for {updated} boards")

    if workspace:
        target = next((w for w in org.workspaces if w.id == workspace), None)
        if target is None:
            console.print(f"[red]Workspace {workspace} is not in the mirror[/red]")
            raise typer.Exit(code=1)

        result = scorer.analyze_workspace_health(target, org.boards)
        table = Table(title=f"{target.name} - score {result.overall_score}")
        table.add_column("Board", style="cyan")
        table.add_column("Status")
        table.add_column("Items", justify="right")
        table.add_column("Issues")
        for board in (b for b in org.boards if b.workspace_id == workspace):
            board_health = scorer.analyze_board_health(board)
            style = STATUS_STYLES[board_health.status.value]
            table.add_row(
                board.name,
                f"[{style}]{board_health.status.value}[/{style}]",
                str(board_health.items_count),
                "; ".join(board_health.issues),
            )
        console.print(table)
        for recommendation in result.recommendations:
            console.print(f"💡 {recommendation}")
        return

    data = scorer.get_health_dashboard_data(org)
    rprint(Panel.fit(f"Overall health score: {data['overall_score']}", style="bold green"))

    counts = Table(title="Boards by status")
    counts.add_column("Status", style="cyan")
    counts.add_column("Boards", justify="right")
    for status_name, count in data["board_status_counts"].items():
        counts.add_row(status_name, str(count))
    console.print(counts)

    scores = Table(title="Workspaces")
    scores.add_column("Workspace", style="cyan")
    scores.add_column("Score", justify="right")
    scores.add_column("Boards", justify="right")
    for ws in data["workspace_scores"]:
        scores.add_row(ws["name"], str(ws["score"]), str(ws["board_count"]))
    console.print(scores)

    for recommendation in data["recommendations"]:
        console.print(f"💡 {recommendation}")


@app.command()
def validate(
    remote: bool = typer.Option(
        False, "--remote", help="Also check the priority workspaces against monday.com"
    ),
):
    """Check mirror integrity and, optionally, the priority workspace setup."""
    settings = get_settings()
    with open_store(settings) as store:
        report = SyncOrchestrator(None, store, settings).validate_integrity()

    if report.is_valid:
        console.print("✅ Mirror is consistent")
    for issue in report.issues:
        console.print(f"⚠️  {issue}")

    if not remote:
        if not report.is_valid:
            raise typer.Exit(code=1)
        return

    _require_api_key(settings)

    async def check():
        async with MondayAPIClient.from_settings(settings) as client:
            with open_store(settings) as store:
                return await SyncOrchestrator(client, store, settings).validate_priority_setup()

    setup_report = asyncio.run(check())
    if setup_report.found_workspaces:
        console.print(f"Found: {', '.join(setup_report.found_workspaces)}")
    if setup_report.missing_workspaces:
        console.print(f"[red]Missing: {', '.join(setup_report.missing_workspaces)}[/red]")
    for issue in setup_report.issues:
        console.print(f"⚠️  {issue}")
    for recommendation in setup_report.recommendations:
        console.print(f"💡 {recommendation}")

    if not (report.is_valid and setup_report.is_valid):
        raise typer.Exit(code=1)


@app.command()
def history(
    limit: int = typer.Option(20, help="Number of sync runs to show"),
    status_filter: Optional[str] = typer.Option(None, "--status", help="Only runs with this status"),
):
    """List recent sync runs."""
    settings = get_settings()
    with open_store(settings) as store:
        runs = [run.to_dict() for run in store.get_sync_runs(limit=limit, status=status_filter)]

    table = Table(title="Sync runs", show_header=True, header_style="bold magenta")
    table.add_column("Started", style="cyan")
    table.add_column("Kind")
    table.add_column("Scope")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Error")

    status_emoji = {"running": "🟡", "completed": "✅", "failed": "❌", "cancelled": "⏹️"}
    for run in runs:
        error = run["error_message"] or ""
        table.add_row(
            run["started_at"] or "-",
            run["sync_type"],
            run["scope"] or "-",
            f"{status_emoji.get(run['status'], '❓')} {run['status']}",
            str(run["records_processed"]),
            error[:60] + "..." if len(error) > 60 else error,
        )

    console.print(table)


@app.command()
def init_db():
    """Create the mirror tables if they do not exist."""
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    try:
        init_database(engine)
    finally:
        engine.dispose()
    console.print(f"✅ Database initialized at {settings.database_url}")


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"Monday Mirror v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
