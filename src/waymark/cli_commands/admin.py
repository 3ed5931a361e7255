"""CLI commands for admin: init, serve, activity."""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from waymark.cli_common import get_db
from waymark.core import DB_FILENAME, WAYMARK_DIR_NAME, WaymarkDB, read_config, write_config


@click.command()
@click.option("--prefix", default=None, help="ID prefix for work items (default: directory name)")
@click.option(
    "--review-default/--no-review-default",
    default=None,
    help="Enable the review gate on new features and bugs by default",
)
def init(prefix: str | None, review_default: bool | None) -> None:
    """Initialize .waymark/ in the current directory."""
    cwd = Path.cwd()
    waymark_dir = cwd / WAYMARK_DIR_NAME

    if waymark_dir.exists():
        click.echo(f"{WAYMARK_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(waymark_dir)
        db = WaymarkDB(waymark_dir / DB_FILENAME, prefix=config.get("prefix", "waymark"))
        db.initialize()
        db.close()
        if review_default is not None:
            config["default_review_enabled"] = review_default
            write_config(waymark_dir, config)
            click.echo(f"  Review by default: {'on' if review_default else 'off'}")
        return

    prefix = prefix or cwd.name
    waymark_dir.mkdir()

    config = {"prefix": prefix, "version": 1, "default_review_enabled": bool(review_default)}
    write_config(waymark_dir, config)

    db = WaymarkDB(waymark_dir / DB_FILENAME, prefix=prefix)
    db.initialize()
    db.close()

    click.echo(f"Initialized {WAYMARK_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {waymark_dir / DB_FILENAME}")
    click.echo(f"  Review by default: {'on' if config['default_review_enabled'] else 'off'}")
    click.echo('\nNext: waymark create "My feature" --type=feature')


@click.command()
@click.option("--port", default=8378, type=int, help="Server port (default 8378)")
def serve(port: int) -> None:
    """Run the HTTP API for this project (requires waymark[api])."""
    try:
        from waymark.api import main as api_main
    except ImportError:
        click.echo('The HTTP API requires extra dependencies. Install with: pip install "waymark[api]"', err=True)
        sys.exit(1)
    api_main(port=port)


@click.command()
@click.option("--limit", default=20, type=int, help="Max events (default 20)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def activity(limit: int, as_json: bool) -> None:
    """Show recent events across all work items."""
    with get_db() as db:
        event_list = db.get_recent_events(limit=limit)
        if as_json:
            click.echo(json_mod.dumps(event_list, indent=2, default=str))
            return
        for ev in event_list:
            actor_str = f" by {ev['actor']}" if ev.get("actor") else ""
            click.echo(f"  {ev['created_at']}  {ev['work_item_id']}  {ev['event_type']}{actor_str}  {ev['work_item_name']}")
        click.echo(f"\n{len(event_list)} events")


def register(cli: click.Group) -> None:
    """Register admin commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(serve)
    cli.add_command(activity)
