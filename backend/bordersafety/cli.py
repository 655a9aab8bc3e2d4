"""
Border Safety command line entry module.

Commands: serve (run the API with uvicorn), check-logs (print the latest
application log entries and the total count), set-threat (change the threat
level directly in the database) and purge-logs (one retention purge).
"""
import asyncio
import os
import sys

import click

from bordersafety import __version__
from bordersafety.core.config import Settings, configure_logging
from bordersafety.core.database import Database
from bordersafety.core.exceptions import BusinessError
from bordersafety.services.app_log_store import AppLogStore
from bordersafety.services.threat_level import ThreatLevelStore
from bordersafety.tasks.log_cleanup import run_cleanup


def _open_database(settings: Settings) -> Database:
    return Database(settings.database_url, busy_timeout=settings.database_busy_timeout)


async def _latest_logs(settings: Settings, limit: int):
    async with _open_database(settings) as database:
        async with database.session() as db:
            store = AppLogStore(db)
            return await store.list(limit=limit), await store.count()


async def _set_threat(settings: Settings, level: str):
    async with _open_database(settings) as database:
        async with database.session() as db:
            store = ThreatLevelStore(db, default=settings.default_threat_level)
            state = await store.set_level(level)
            await AppLogStore(db).append(
                "INFO", "STATUS", f"Threat level changed to {state.level.value}", metadata={"source": "cli"}
            )
            return state


async def _purge(settings: Settings, days: int):
    async with _open_database(settings) as database:
        return await run_cleanup(database, days)


@click.group(invoke_without_command=True)
@click.option("--database", "-d", "database_path", default=None, help="SQLite file (overrides DATABASE_PATH)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, database_path, verbose):
    """Border Safety backend tools."""
    ctx.ensure_object(dict)
    settings = Settings()
    if database_path:
        settings.database_path = database_path
    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose

    configure_logging("DEBUG" if verbose else "WARNING")

    if ctx.invoked_subcommand is None:
        click.echo(f"Border Safety backend v{__version__}")
        click.echo(f"Database: {settings.database_path}")
        click.echo("Use --help for available commands")


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=3001, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
@click.pass_context
def serve(ctx, host, port, reload):
    """Run the HTTP API."""
    import uvicorn

    from bordersafety.main import create_app

    settings: Settings = ctx.obj["settings"]
    # The group callback configured CLI-level logging; the server logs at LOG_LEVEL
    log_level = "debug" if ctx.obj["verbose"] else settings.log_level.lower()
    configure_logging(log_level, force=True)

    if reload:
        # The reloader imports the app in a fresh process that only sees the environment
        os.environ["DATABASE_PATH"] = settings.database_path
        uvicorn.run("bordersafety.main:app", host=host, port=port, reload=True, log_level=log_level)
    else:
        uvicorn.run(create_app(settings), host=host, port=port, log_level=log_level)


@cli.command("check-logs")
@click.option("--limit", "-n", default=10, show_default=True, type=click.IntRange(min=1))
@click.pass_context
def check_logs(ctx, limit):
    """Print the latest application log entries."""
    try:
        entries, total = asyncio.run(_latest_logs(ctx.obj["settings"], limit))
    except BusinessError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    click.echo("Latest app_logs:")
    click.echo("================")
    if not entries:
        click.echo("(No logs found in database)")
    for i, entry in enumerate(entries, start=1):
        click.echo(f"{i}. [{entry.level}] {entry.category}: {entry.message}")
        click.echo(f"   IP: {entry.ip or 'N/A'} | Time: {entry.created_at.isoformat()}")
    click.echo(f"\nTotal logs: {total}")


@cli.command("set-threat")
@click.argument("level")
@click.pass_context
def set_threat(ctx, level):
    """Set the current threat level (GREEN/YELLOW/ORANGE/RED)."""
    try:
        state = asyncio.run(_set_threat(ctx.obj["settings"], level))
    except BusinessError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    click.echo(f"Threat level: {state.level.value} (updated {state.updated_at.isoformat()})")


@cli.command("purge-logs")
@click.option("--days", default=None, type=click.IntRange(min=0), help="Retention in days (default LOG_RETENTION_DAYS)")
@click.pass_context
def purge_logs(ctx, days):
    """Delete log entries older than the retention period."""
    settings: Settings = ctx.obj["settings"]
    retention = settings.log_retention_days if days is None else days
    try:
        result = asyncio.run(_purge(settings, retention))
    except BusinessError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {result['deleted_count']} entries older than {retention} days")


if __name__ == "__main__":
    cli()
