"""Typer CLI entrypoint for listsync."""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import partial
from typing import Iterable, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, MediaListConfig, TriggerKind
from .engine import (
    DownstreamRequester,
    ExecutionTracker,
    GlobalDeduplicationCache,
    ProcessingExecution,
    ThreadPoolManager,
    build_registry,
)
from .errors import ListSyncError
from .infra import SQLiteManager
from .logging_conf import available_list_logs, configure_logging, list_log_path, tail_log
from .orchestrator import BatchSummary, Orchestrator
from .scheduler import APSchedulerAdapter

app = typer.Typer(help="listsync command line", no_args_is_help=True, rich_markup_mode=None)
lists_app = typer.Typer(name="lists", help="Media list commands", no_args_is_help=True)
cache_app = typer.Typer(name="cache", help="Global deduplication cache", no_args_is_help=True)
schedule_app = typer.Typer(name="schedule", help="Scheduler inspection", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log viewing commands", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    scheduler: APSchedulerAdapter
    orchestrator: Orchestrator
    tracker: ExecutionTracker
    cache: GlobalDeduplicationCache
    thread_pool: ThreadPoolManager
    storage: SQLiteManager


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    storage = SQLiteManager()
    db_path = repository.database_path()
    cache = GlobalDeduplicationCache(storage, db_path)
    tracker = ExecutionTracker(storage, db_path)
    orchestrator = Orchestrator(
        repository=repository,
        cache=cache,
        tracker=tracker,
        fetchers=build_registry(timeout=global_config.http_timeout),
        requester_factory=partial(DownstreamRequester, timeout=global_config.http_timeout),
        fetch_delay=global_config.batch_fetch_delay,
    )
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    scheduler = APSchedulerAdapter(
        repository,
        thread_pool,
        process_list_callback=orchestrator.run_scheduled_list,
        process_batch_callback=orchestrator.run_scheduled_batch,
    )
    return AppState(
        repository=repository,
        scheduler=scheduler,
        orchestrator=orchestrator,
        tracker=tracker,
        cache=cache,
        thread_pool=thread_pool,
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _fail(exc: Exception) -> None:
    console.print(f"Error: {exc}", style="red")
    raise typer.Exit(code=1)


def _render_lists_table(lists: Sequence[MediaListConfig]) -> Table:
    table = Table(title=f"Media lists ({len(lists)})", box=box.SIMPLE_HEAD)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Provider", style="magenta")
    table.add_column("Enabled")
    table.add_column("Max", justify="right")
    table.add_column("Schedule", style="yellow")
    table.add_column("Owner", justify="right")
    for item in lists:
        table.add_row(
            str(item.id),
            item.label,
            item.provider.value,
            "yes" if item.enabled else "no",
            str(item.max_items),
            item.schedule or "-",
            str(item.owner_id),
        )
    return table


def _render_jobs_table(jobs: Iterable[dict]) -> Table:
    table = Table(title="Scheduled jobs", box=box.SIMPLE_HEAD)
    table.add_column("Job ID", style="cyan", no_wrap=True)
    table.add_column("Next run", style="green")
    table.add_column("Trigger", style="magenta", overflow="fold")
    for job in jobs:
        table.add_row(
            str(job.get("id", "-")),
            str(job.get("next_run_time") or "-"),
            str(job.get("trigger", "-")),
        )
    return table


def _render_executions_table(executions: Sequence[ProcessingExecution], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("List", justify="right")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("Requested", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Started")
    table.add_column("Error", overflow="fold")
    for execution in executions:
        table.add_row(
            str(execution.id),
            str(execution.list_id),
            execution.trigger.value,
            execution.status.value,
            str(execution.items_found),
            str(execution.items_requested),
            str(execution.items_failed),
            execution.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            execution.error_message or "",
        )
    return table


def _render_batch_summary(summary: BatchSummary) -> Table:
    table = Table(title=f"Batch {summary.batch_id}", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Lists processed", str(summary.processed_lists))
    table.add_row("Items found", str(summary.total_items_found))
    table.add_row("Unique items", str(summary.global_unique_items))
    table.add_row("Already cached", str(summary.skipped_cached))
    table.add_row("Requested", str(summary.items_requested))
    table.add_row("Failed", str(summary.items_failed))
    return table


app.add_typer(lists_app, name="lists")
app.add_typer(cache_app, name="cache")
app.add_typer(schedule_app, name="schedule")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    ctx.obj = build_state(verbose)


@lists_app.command("show", help="Show configured media lists.")
def lists_show(
    ctx: typer.Context,
    owner: Optional[int] = typer.Option(None, "--owner", help="Only lists of this owner."),
) -> None:
    state = _get_state(ctx)
    lists = state.repository.list_lists(owner)
    if not lists:
        console.print("No media lists configured. Add YAML files under data/lists/.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_lists_table(lists))


@lists_app.command("run", help="Process one list now.")
def lists_run(
    ctx: typer.Context,
    list_id: int = typer.Argument(..., help="List id."),
    owner: Optional[int] = typer.Option(None, "--owner", help="Owner the list must belong to."),
) -> None:
    state = _get_state(ctx)
    try:
        execution = state.orchestrator.process_list(list_id, TriggerKind.MANUAL, owner_id=owner)
    except ListSyncError as exc:
        _fail(exc)
        return
    console.print(_render_executions_table([execution], title=f"List {list_id} result"))


@app.command("run-all", help="Process every enabled list with global deduplication.")
def run_all(
    ctx: typer.Context,
    owner: Optional[int] = typer.Option(None, "--owner", help="Owner whose lists are processed."),
) -> None:
    state = _get_state(ctx)
    try:
        summary = state.orchestrator.process_batch(TriggerKind.MANUAL, owner)
    except ListSyncError as exc:
        _fail(exc)
        return
    if not summary.processed_lists:
        console.print("No enabled lists to process.", style="yellow")
        return
    console.print(_render_batch_summary(summary))
    console.print(_render_executions_table(summary.executions, title="Executions"))


@app.command("history", help="Show recent processing executions.")
def history(
    ctx: typer.Context,
    list_id: Optional[int] = typer.Option(None, "--list", help="Filter by list id."),
    batch_id: Optional[str] = typer.Option(None, "--batch", help="Filter by batch id."),
    limit: int = typer.Option(20, "--limit", help="Number of records."),
) -> None:
    state = _get_state(ctx)
    executions = state.tracker.recent(limit=limit, list_id=list_id, batch_id=batch_id)
    if not executions:
        console.print("No executions recorded.", style="dim")
        return
    console.print(_render_executions_table(executions, title=f"Last {len(executions)} executions"))


@cache_app.command("show", help="Show cached (already requested) items.")
def cache_show(
    ctx: typer.Context,
    limit: int = typer.Option(50, "--limit", help="Number of entries."),
    list_id: Optional[int] = typer.Option(None, "--list", help="Filter by list id."),
) -> None:
    state = _get_state(ctx)
    entries = state.cache.entries(limit=limit, list_id=list_id)
    total = state.cache.count()
    if not entries:
        console.print("Cache is empty.", style="dim")
        return
    table = Table(title=f"Cached items ({len(entries)} of {total})", box=box.SIMPLE_HEAD)
    table.add_column("External ID", style="cyan")
    table.add_column("Title")
    table.add_column("Year")
    table.add_column("Kind")
    table.add_column("List", justify="right")
    table.add_column("Cached at")
    for entry in entries:
        table.add_row(
            str(entry.external_id),
            entry.title,
            str(entry.year or "-"),
            entry.media_kind.value,
            str(entry.list_id),
            entry.fetched_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@cache_app.command("clear", help="Forget every requested item so it can be requested again.")
def cache_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm("Clear the global deduplication cache?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    removed = state.cache.clear()
    console.print(f"Removed {removed} cached items.", style="green")


@schedule_app.command("show", help="Show timers derived from the current configuration.")
def schedule_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    state.scheduler.reload()
    jobs = list(state.scheduler.list_jobs())
    if not jobs:
        console.print("No scheduled jobs.", style="dim")
        return
    console.print(_render_jobs_table(jobs))


@app.command("serve", help="Run the scheduler until interrupted.")
def serve(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    state.scheduler.start()
    jobs = list(state.scheduler.list_jobs())
    if jobs:
        console.print(_render_jobs_table(jobs))
    console.print("Scheduler running. Press Ctrl+C to stop.", style="cyan")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler...", style="yellow")
    finally:
        state.scheduler.shutdown()
        state.thread_pool.shutdown(wait=True)
        state.orchestrator.fetchers.close()
        state.storage.close_all()


@log_app.command("list", help="List per-list log files.")
def log_list() -> None:
    logs = list(available_list_logs())
    if not logs:
        console.print("No list logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of a log file.")
def log_show(
    ctx: typer.Context,
    list_id: Optional[int] = typer.Option(None, "--list", help="List id (default: application log)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    state = _get_state(ctx)
    if list_id is not None:
        path = list_log_path(list_id)
    else:
        path = state.repository.locator.logs_dir / "listsync.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    header = f"{'List ' + str(list_id) if list_id is not None else 'Application'} log, last {len(lines)} lines"
    console.print(header, style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
