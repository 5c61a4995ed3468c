"""followupx jobs: inspect and manage scheduled jobs."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from followupx.config import get_settings
from followupx.db.session import get_engine, get_session_factory
from followupx.errors import UnknownJobError
from followupx.models.job import JobState
from followupx.scheduler.cron import cron_to_human
from followupx.scheduler.store import JobStore

console = Console()

_STATE_STYLE = {
    JobState.PENDING: "cyan",
    JobState.RUNNING: "yellow",
    JobState.COMPLETED: "green",
    JobState.FAILED: "bold red",
    JobState.CANCELLED: "dim",
}


def _run(coro):
    async def _wrapped():
        try:
            return await coro
        finally:
            await get_engine().dispose()

    return asyncio.run(_wrapped())


def _store() -> JobStore:
    return JobStore(get_session_factory(), get_settings())


@click.command()
@click.option(
    "--state",
    type=click.Choice([s.value for s in JobState]),
    default=None,
    help="Only show jobs in this state.",
)
@click.option("--name", default=None, help="Only show jobs with this name.")
@click.option("--limit", default=50, show_default=True, help="Maximum rows to show.")
def jobs(state: str | None, name: str | None, limit: int):
    """List scheduled jobs."""
    rows = _run(
        _store().list_jobs(state=JobState(state) if state else None, name=name, limit=limit)
    )
    if not rows:
        console.print("[dim]No jobs[/dim]")
        return

    table = Table(title="Scheduled Jobs", show_header=True)
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Scheduled (UTC)")
    table.add_column("Fails", justify="right")
    table.add_column("Rule")
    table.add_column("Last error")
    for job in rows:
        style = _STATE_STYLE.get(job.state, "")
        table.add_row(
            job.id,
            job.name,
            f"[{style}]{job.state.value}[/{style}]" if style else job.state.value,
            job.scheduled_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(job.fail_count),
            cron_to_human(job.recurrence_rule) if job.recurrence_rule else "",
            (job.fail_reason or "")[:60],
        )
    console.print(table)


@click.command()
@click.argument("job_id")
def cancel(job_id: str):
    """Cancel a pending job."""
    if _run(_store().cancel(job_id)):
        console.print(f"[green]Cancelled[/green] {job_id}")
    else:
        console.print(f"[yellow]Job {job_id} is not pending; nothing cancelled[/yellow]")
        raise SystemExit(1)


@click.command()
@click.argument("job_id")
def requeue(job_id: str):
    """Requeue a permanently failed job with a fresh attempt budget."""
    try:
        requeued = _run(_store().requeue(job_id))
    except UnknownJobError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1) from exc
    if requeued:
        console.print(f"[green]Requeued[/green] {job_id}")
    else:
        console.print(f"[yellow]Job {job_id} is not failed or its key is taken[/yellow]")
        raise SystemExit(1)
