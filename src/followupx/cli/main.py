"""FollowUpX CLI: main entry point."""

import click

from followupx.cli.jobs import cancel, jobs, requeue


@click.group()
@click.version_option(package_name="followupx")
def cli():
    """FollowUpX: follow-up scheduling for your leads."""


cli.add_command(jobs)
cli.add_command(cancel)
cli.add_command(requeue)


@cli.command()
def daemon():
    """Start the scheduler daemon (poll loop and periodic jobs)."""
    import asyncio

    from followupx.core.loop import run_daemon

    click.echo("Starting FollowUpX scheduler...")
    asyncio.run(run_daemon())


@cli.command()
def initdb():
    """Create all tables in the configured database."""
    import asyncio

    from followupx.db.session import create_all, get_engine

    async def _init():
        engine = get_engine()
        try:
            await create_all(engine)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    click.echo("Database tables created.")
