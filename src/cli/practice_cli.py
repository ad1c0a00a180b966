"""
Spaced practice CLI.

Works on the JSON files in the configured data directory:
library.json (owners, items, history), scheduled_sessions.json,
memory_stability.json and calibration.json.

Usage:
    spaced next ITEM_ID --score 7 --reps 3   # register a session, plan the next one
    spaced next ITEM_ID                      # replan one item without a session
    spaced recompute                         # replan every item
    spaced reschedule                        # move overdue sessions forward
    spaced repair                            # orphan cleanup + missing session repair
    spaced sessions                          # list open sessions
    spaced curve ITEM_ID --days 30           # predicted retention curve
    spaced stability ITEM_ID                 # memory statistics
    spaced calibration                       # learned personal tau factors
    spaced merge NEW_ID OLD_ID [OLD_ID ...]  # merge stability data
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Settings, get_settings
from src.scheduling import (
    Difficulty,
    HistoryEntry,
    Library,
    OverrideRequest,
    PersistenceError,
    ScheduledSession,
    SchedulingServices,
    SessionOutcome,
    build_services,
)

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="spaced",
    help="Adaptive spaced-repetition practice scheduler",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


class CLIContext:
    """
    Dependency container for CLI commands.

    Loads the library and builds the services lazily so that commands only
    touch the files they need.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._library: Library | None = None
        self._services: SchedulingServices | None = None

    @property
    def library(self) -> Library:
        if self._library is None:
            library = Library(self.settings.library_path)
            try:
                library.load()
            except PersistenceError as e:
                console.print(f"[red]Library unreadable:[/red] {e}")
                raise typer.Exit(1) from e
            self._library = library
        return self._library

    @property
    def services(self) -> SchedulingServices:
        if self._services is None:
            self._services = build_services(self.settings, self.library.history)
        return self._services

    def save_library(self) -> None:
        try:
            self.library.save()
        except PersistenceError as e:
            console.print(f"[red]Library not saved:[/red] {e}")
            raise typer.Exit(1) from e


def _context(ctx: typer.Context) -> CLIContext:
    if ctx.obj is None:
        ctx.obj = CLIContext(get_settings())
    return ctx.obj


def _configure_logging(settings: Settings, verbose: bool) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB", retention=5)


def _sessions_table(title: str, sessions: list[ScheduledSession]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Date", style="cyan")
    table.add_column("Owner")
    table.add_column("Item")
    table.add_column("Difficulty")
    table.add_column("Tau", justify="right")
    table.add_column("Status", style="dim")
    for s in sessions:
        table.add_row(
            s.scheduled_date.isoformat(),
            s.owner_title or s.owner_id,
            s.item_label or s.item_id,
            s.difficulty.value,
            f"{s.tau_value:.2f}",
            s.status.value,
        )
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging to stderr")] = False,
    data_dir: Annotated[
        Path | None, typer.Option("--data-dir", "-d", help="Override the data directory")
    ] = None,
) -> None:
    """Adaptive spaced-repetition practice scheduler."""
    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    _configure_logging(settings, verbose)
    ctx.obj = CLIContext(settings)


# =============================================================================
# Scheduling Commands
# =============================================================================


@app.command("next")
def next_session(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Practice item id")],
    score: Annotated[
        float | None, typer.Option("--score", "-s", help="Performance score 0-10 of the finished session")
    ] = None,
    reps: Annotated[int, typer.Option("--reps", "-r", help="Repetitions in this session")] = 0,
    minutes: Annotated[float, typer.Option("--minutes", "-m", help="Session duration in minutes")] = 0.0,
    outcome: Annotated[
        SessionOutcome, typer.Option("--outcome", "-o", help="Session outcome")
    ] = SessionOutcome.TARGET_NOT_REACHED,
    failures: Annotated[int, typer.Option("--failures", help="Failed attempts in this session")] = 0,
    override_days: Annotated[
        float | None, typer.Option("--override-days", help="Use this interval instead of the computed one")
    ] = None,
    reason: Annotated[str, typer.Option("--reason", help="Why the interval was overridden")] = "",
    preserve: Annotated[
        bool, typer.Option("--preserve", help="Extra same-day practice; keep the current due date")
    ] = False,
) -> None:
    """
    Plan the next session of one item.

    With --score the finished session is recorded first; without it the
    item is replanned from its history.
    """
    cli = _context(ctx)
    item = cli.library.get_item(item_id)
    owner = cli.library.get_owner(item.owner_id) if item else None
    if item is None or owner is None:
        console.print(f"[red]Unknown item or owner:[/red] {item_id}")
        raise typer.Exit(1)

    services = cli.services
    today = services.clock.today()
    override = OverrideRequest(override_days, reason) if override_days is not None else None

    if score is None and preserve:
        result = None
    elif score is None:
        result = services.practice.replan_item(item, owner, override, today)
    else:
        entry = HistoryEntry(
            item_id=item.id,
            owner_id=owner.id,
            date=today,
            performance_score=score,
            repetitions=reps,
            duration=timedelta(minutes=minutes),
            session_outcome=outcome,
            total_failures=failures,
        )
        result = services.practice.register_session(item, owner, entry, override, preserve_due_date=preserve)

    cli.save_library()

    if result is None:
        console.print(f"[yellow]Due date {item.next_due_date} preserved[/yellow]")
        return

    body = (
        f"Next practice: [bold]{result.next_date}[/bold]\n"
        f"Interval: {result.interval_days:.2f} days  Tau: {result.tau:.2f}\n"
        f"Path: {result.path}  Clamp: {result.clamp_reason}"
    )
    if result.error:
        body += f"\n[red]Fallback: {result.error}[/red]"
    console.print(Panel(body, title=item.label or item.id, border_style="cyan"))


@app.command()
def recompute(
    ctx: typer.Context,
    preserve: Annotated[bool, typer.Option("--preserve", help="Skip (same-day extra practice)")] = False,
) -> None:
    """Replan every active item and replace all open sessions."""
    cli = _context(ctx)
    library = cli.library
    count = cli.services.practice.recompute_all(
        list(library.items.values()), list(library.owners.values()), preserve_due_date=preserve
    )
    cli.save_library()
    console.print(f"[green]Planned {count} sessions[/green]")


@app.command()
def reschedule(
    ctx: typer.Context,
    preserve: Annotated[bool, typer.Option("--preserve", help="Skip (same-day extra practice)")] = False,
) -> None:
    """Move overdue open sessions to a new date after today."""
    cli = _context(ctx)
    library = cli.library
    count = cli.services.store.reschedule_overdue_sessions(
        list(library.items.values()),
        list(library.owners.values()),
        library.history,
        preserve_due_date=preserve,
    )
    cli.save_library()
    console.print(f"[green]Rescheduled {count} overdue sessions[/green]")


@app.command()
def repair(ctx: typer.Context) -> None:
    """Remove orphaned sessions and plan missing ones for items practiced today."""
    cli = _context(ctx)
    library = cli.library
    store = cli.services.store
    orphans = store.cleanup_orphaned_sessions(library.items.keys(), library.owners.keys())
    repaired = store.auto_repair_missing_sessions(
        list(library.items.values()), list(library.owners.values()), library.history
    )
    cli.save_library()
    console.print(f"[green]Removed {orphans} orphaned, repaired {repaired} missing sessions[/green]")


@app.command()
def difficulty(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Practice item id")],
    level: Annotated[str, typer.Argument(help="Easy, Average, Difficult or Mastered")],
) -> None:
    """Change an item's difficulty and update its upcoming sessions."""
    cli = _context(ctx)
    item = cli.library.get_item(item_id)
    if item is None:
        console.print(f"[red]Unknown item:[/red] {item_id}")
        raise typer.Exit(1)
    updated = cli.services.practice.update_item_difficulty(item, Difficulty.parse(level))
    cli.save_library()
    console.print(f"[green]{item.id} is now {item.difficulty.value}; {updated} upcoming sessions updated[/green]")


@app.command()
def merge(
    ctx: typer.Context,
    new_item_id: Annotated[str, typer.Argument(help="Item receiving the merged data")],
    old_item_ids: Annotated[list[str], typer.Argument(help="Items being merged")],
) -> None:
    """Merge the stability data of several items into one."""
    cli = _context(ctx)
    merged = cli.services.practice.merge_stability_data(old_item_ids, new_item_id)
    if merged is None:
        console.print("[yellow]No stability data to merge[/yellow]")
        return
    console.print(
        f"[green]Merged into {new_item_id}:[/green] S={merged.stability:.2f} "
        f"D={merged.difficulty:.3f} reviews={merged.review_count}"
    )


# =============================================================================
# Display Commands
# =============================================================================


@app.command()
def sessions(
    ctx: typer.Context,
    show_all: Annotated[bool, typer.Option("--all", "-a", help="Include completed sessions")] = False,
) -> None:
    """List scheduled sessions."""
    store = _context(ctx).services.store
    rows = store.get_all() if show_all else store.get_open_sessions()
    if not rows:
        console.print("[dim]No scheduled sessions[/dim]")
        return
    console.print(_sessions_table(f"Scheduled Sessions ({len(rows)})", rows))


@app.command()
def curve(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Practice item id")],
    days: Annotated[int, typer.Option("--days", help="Days ahead")] = 30,
) -> None:
    """Show the predicted retention curve of an item."""
    cli = _context(ctx)
    item = cli.library.get_item(item_id)
    if item is None:
        console.print(f"[red]Unknown item:[/red] {item_id}")
        raise typer.Exit(1)

    table = Table(title=f"Retention: {item.label or item.id}", show_header=True)
    table.add_column("Date", style="cyan")
    table.add_column("Retention", justify="right")
    for day, percent in cli.services.scheduler.retention_curve_for(item, days):
        style = "green" if percent >= 80 else "yellow" if percent >= 60 else "red"
        table.add_row(day.isoformat(), f"[{style}]{percent:.1f}%[/{style}]")
    console.print(table)


@app.command()
def stability(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Practice item id")],
) -> None:
    """Show memory statistics of an item."""
    services = _context(ctx).services
    stats = services.stability.get_memory_stats(item_id)

    table = Table(title=f"Memory Stats: {item_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Stability", f"{stats.stability:.2f} days")
    table.add_row("Difficulty", f"{stats.difficulty:.3f}")
    table.add_row("Retrievability", f"{stats.current_retrievability:.1%}")
    table.add_row("Reviews", str(stats.review_count))
    table.add_row("Last review", str(stats.last_review_date or "-"))
    table.add_row("Optimal next review", stats.optimal_next_review.isoformat())
    table.add_row("Retention strength", f"{stats.retention_strength:.1f}")
    table.add_row("Learning progress", f"{stats.learning_progress(services.stability.config.initial_stability):.1f}")
    if stats.is_new:
        table.add_row("Note", "[dim]no stability record yet[/dim]")
    console.print(table)


@app.command()
def calibration(ctx: typer.Context) -> None:
    """Show the personal tau factors learned per difficulty."""
    model = _context(ctx).services.calibration
    if model is None:
        console.print("[yellow]Personal calibration is disabled[/yellow]")
        return

    phase = "calibrated" if model.is_calibrated else "learning"
    table = Table(title=f"Personal Calibration ({model.total_sessions()} sessions, {phase})")
    table.add_column("Difficulty", style="cyan")
    table.add_column("Learned factor", justify="right")
    table.add_column("Applied factor", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Sessions", justify="right")
    learned = model.stats()
    for difficulty in Difficulty:
        adjustment = learned.get(difficulty.value.lower())
        if adjustment is None:
            table.add_row(difficulty.value, "-", "1.00", "-", "0")
            continue
        table.add_row(
            difficulty.value,
            f"{adjustment.adjustment_factor:.3f}",
            f"{model.personal_adjustment(difficulty):.2f}",
            f"{adjustment.confidence:.0%}",
            str(adjustment.session_count),
        )
    console.print(table)
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
