"""
Admin CLI for the forge build history.

Provides commands for inspecting and pruning recorded builds.
"""

import asyncio
import json
import os
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import click

from forge_persistence.sqlite_history import SQLiteBuildHistory


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return os.environ.get("FORGE_DB_PATH", str(Path.home() / ".forge" / "builds.db"))


def get_history() -> SQLiteBuildHistory:
    """Get the history store instance."""
    return SQLiteBuildHistory(get_db_path())


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


@click.group()
def cli():
    """forge Admin - Inspect and maintain the build history."""
    pass


@cli.command("init-db")
def init_db():
    """Create the build history database."""
    db_path = get_db_path()
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def init():
        store = get_history()
        try:
            await store.initialize()
        finally:
            await store.close()

    run_async(init())
    click.echo(f"✓ Build history initialized at {db_path}")


@cli.group()
def history():
    """Inspect recorded builds."""
    pass


@history.command("list")
@click.option("--image", "image_name", help="Only show builds of this image")
@click.option("--limit", default=50, show_default=True, type=click.IntRange(min=1))
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def history_list(image_name: str | None, limit: int, json_output: bool):
    """List recorded builds, newest first."""

    async def list_builds():
        store = get_history()
        await store.initialize()

        try:
            records = await store.list_builds(image_name=image_name, limit=limit)

            if json_output:
                click.echo(json.dumps([r.to_dict() for r in records], indent=2))
                return

            if not records:
                click.echo("No builds found.")
                return

            click.echo(f"\n{'ID':<38} {'Image':<24} {'Status':<10} {'Started':<20} {'Exit':<5}")
            click.echo("-" * 100)
            for r in records:
                started = r.start_time.strftime("%Y-%m-%d %H:%M:%S") if r.start_time else "N/A"
                exit_code = "-" if r.exit_code is None else str(r.exit_code)
                click.echo(
                    f"{r.id:<38} {r.image_name[:24]:<24} {r.status:<10} {started:<20} {exit_code:<5}"
                )
            click.echo()

        finally:
            await store.close()

    run_async(list_builds())


@history.command("show")
@click.argument("job_id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def history_show(job_id: str, json_output: bool):
    """Show one recorded build."""

    async def show():
        store = get_history()
        await store.initialize()

        try:
            record = await store.get(job_id)
            if record is None:
                click.echo(f"Error: Build not found: {job_id}", err=True)
                sys.exit(1)

            if json_output:
                click.echo(json.dumps(record.to_dict(), indent=2))
                return

            data = record.to_dict()
            click.echo("\nBuild Details:")
            click.echo(f"  ID:         {data['id']}")
            click.echo(f"  Image:      {data['image_name']}")
            click.echo(f"  Source:     {data['source']}")
            click.echo(f"  Status:     {data['status']}")
            click.echo(f"  Started:    {data['start_time'] or 'N/A'}")
            click.echo(f"  Ended:      {data['end_time'] or 'N/A'}")
            click.echo(f"  Exit code:  {'-' if data['exit_code'] is None else data['exit_code']}")
            click.echo(f"  Image ref:  {data['image_ref'] or '-'}")
            click.echo()

        finally:
            await store.close()

    run_async(show())


@history.command("prune")
@click.option(
    "--older-than-days",
    required=True,
    type=click.IntRange(min=0),
    help="Delete finished builds that ended more than this many days ago",
)
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
def history_prune(older_than_days: int, yes: bool):
    """Delete old finished builds."""
    if not yes:
        click.confirm(
            f"Delete builds that finished more than {older_than_days} days ago?", abort=True
        )

    cutoff = datetime.now(UTC) - timedelta(days=older_than_days)

    async def prune():
        store = get_history()
        await store.initialize()

        try:
            return await store.prune(cutoff)
        finally:
            await store.close()

    removed = run_async(prune())
    click.echo(f"✓ Removed {removed} build(s)")


if __name__ == "__main__":
    cli()
