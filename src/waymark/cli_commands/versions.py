"""CLI commands for version chains: enhance, versions, promote."""

from __future__ import annotations

import json as json_mod

import click

from waymark.cli_common import fail, get_db
from waymark.errors import LifecycleError


@click.command()
@click.argument("work_item_id")
@click.argument("version_notes")
@click.option("--name", default=None, help="Name for the new version (default: parent's name)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def enhance(ctx: click.Context, work_item_id: str, version_notes: str, name: str | None, as_json: bool) -> None:
    """Start the next version of a feature."""
    with get_db() as db:
        try:
            item = db.enhance_work_item(work_item_id, version_notes, name=name, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {item.id}: {item.name} v{item.version} (enhances {work_item_id})")


@click.command()
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def versions(work_item_id: str, as_json: bool) -> None:
    """Show every version related to a work item."""
    with get_db() as db:
        try:
            chain = db.build_version_chain(work_item_id)
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(chain, indent=2, default=str))
            return
        for entry in chain:
            markers = [m for m, on in (("current", entry["is_current"]), ("latest", entry["is_latest"])) if on]
            note = f"  <- {', '.join(markers)}" if markers else ""
            click.echo(f"  v{entry['version']:<3} {entry['id']}  {entry['phase']:<8} {entry['name']}{note}")


@click.command()
@click.argument("concept_id")
@click.option("--name", default=None, help="Feature name (default: concept's name)")
@click.option("--purpose", default=None, help="Feature purpose (default: concept's purpose or hypothesis)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def promote(ctx: click.Context, concept_id: str, name: str | None, purpose: str | None, as_json: bool) -> None:
    """Create a feature from a validated concept."""
    with get_db() as db:
        try:
            item = db.promote_concept(concept_id, name=name, purpose=purpose, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Promoted {concept_id} to {item.id}: {item.name}")


def register(cli: click.Group) -> None:
    """Register version commands with the CLI group."""
    cli.add_command(enhance)
    cli.add_command(versions)
    cli.add_command(promote)
