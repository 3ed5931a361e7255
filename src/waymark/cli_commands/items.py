"""CLI commands for work item CRUD: create, show, list, update, delete, bug, timeline, events."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any

import click

from waymark.cli_common import fail, get_db, parse_key_values
from waymark.core import WorkItem
from waymark.db_timeline import VALID_DIFFICULTIES, VALID_HORIZONS, VALID_TIMELINE_STATUSES
from waymark.errors import LifecycleError, NotFoundError
from waymark.phases import WORK_ITEM_TYPES


def _echo_item(item: WorkItem) -> None:
    click.echo(f"ID:       {item.id}")
    click.echo(f"Name:     {item.name}")
    click.echo(f"Type:     {item.type}")
    click.echo(f"Phase:    {item.phase_label} ({item.phase}){' [terminal]' if item.is_terminal else ''}")
    if item.type == "feature":
        click.echo(f"Version:  {item.version}")
        if item.enhances_work_item_id:
            click.echo(f"Enhances: {item.enhances_work_item_id}")
        if item.source_concept_id:
            click.echo(f"From:     {item.source_concept_id}")
    if item.review_enabled:
        click.echo(f"Review:   {item.review_status or 'not requested'}")
        if item.review_reason:
            click.echo(f"  Reason: {item.review_reason}")
    if item.archived:
        click.echo("Archived: yes")
    click.echo(f"Created:  {item.created_at}")
    if item.purpose:
        click.echo(f"\n--- Purpose ---\n{item.purpose}")
    if item.version_notes:
        click.echo(f"\n--- Version notes ---\n{item.version_notes}")
    if item.rejection_reason:
        click.echo(f"\n--- Rejection reason ---\n{item.rejection_reason}")
    if item.fields:
        click.echo("\n--- Fields ---")
        for k, v in item.fields.items():
            click.echo(f"  {k}: {v}")
    if item.type == "bug":
        click.echo("\n--- Bug ---")
        for section, values in item.bug_metadata.to_dict().items():
            for k, v in values.items():
                if v not in (None, ""):
                    click.echo(f"  {section}.{k}: {v}")


@click.command()
@click.argument("name")
@click.option("--type", "item_type", type=click.Choice(WORK_ITEM_TYPES), default="feature", help="Work item type")
@click.option("--purpose", default="", help="What the work item is for")
@click.option("--field", "-f", multiple=True, help="Field as key=value (repeatable)")
@click.option("--review/--no-review", "review_enabled", default=None, help="Enable the review gate (features and bugs)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    name: str,
    item_type: str,
    purpose: str,
    field: tuple[str, ...],
    review_enabled: bool | None,
    as_json: bool,
) -> None:
    """Create a new work item in its type's first phase."""
    fields = parse_key_values(field, as_json=as_json)
    with get_db() as db:
        try:
            item = db.create_work_item(
                name,
                type=item_type,
                purpose=purpose,
                fields=fields or None,
                review_enabled=review_enabled,
                actor=ctx.obj["actor"],
            )
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {item.id}: {item.name} [{item.type}, {item.phase}]")


@click.command()
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(work_item_id: str, as_json: bool) -> None:
    """Show work item details."""
    with get_db() as db:
        try:
            item = db.get_work_item(work_item_id)
        except NotFoundError:
            click.echo(f"Not found: {work_item_id}", err=True)
            sys.exit(1)

        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
            return
        _echo_item(item)


@click.command("list")
@click.option("--type", "item_type", type=click.Choice(WORK_ITEM_TYPES), default=None, help="Filter by type")
@click.option("--phase", default=None, help="Filter by phase")
@click.option("--archived", "include_archived", is_flag=True, help="Include archived concepts")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_work_items(
    item_type: str | None,
    phase: str | None,
    include_archived: bool,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List work items with optional filters."""
    with get_db() as db:
        items = db.list_work_items(
            type=item_type,
            phase=phase,
            include_archived=include_archived,
            limit=limit,
            offset=offset,
        )

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in items], indent=2, default=str))
            return

        for item in items:
            version = f" v{item.version}" if item.type == "feature" else ""
            click.echo(f"{item.id} [{item.type}{version}] {item.phase:<14} {item.name}")
        click.echo(f"\n{len(items)} work items")


@click.command()
@click.argument("work_item_id")
@click.option("--name", default=None, help="New name")
@click.option("--purpose", default=None, help="New purpose")
@click.option("--field", "-f", multiple=True, help="Field as key=value; key= clears it (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update(
    ctx: click.Context,
    work_item_id: str,
    name: str | None,
    purpose: str | None,
    field: tuple[str, ...],
    as_json: bool,
) -> None:
    """Edit a work item's name, purpose or fields."""
    fields: dict[str, Any] = {k: (v if v != "" else None) for k, v in parse_key_values(field, as_json=as_json).items()}
    with get_db() as db:
        try:
            item = db.update_work_item(
                work_item_id,
                name=name,
                purpose=purpose,
                fields=fields or None,
                actor=ctx.obj["actor"],
            )
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Updated {item.id}: {item.name}")


@click.command()
@click.argument("work_item_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def delete(ctx: click.Context, work_item_id: str, yes: bool, as_json: bool) -> None:
    """Delete a work item with its timeline and history."""
    if not yes and not as_json:
        click.confirm(f"Delete {work_item_id} and its history?", abort=True)
    with get_db() as db:
        try:
            db.delete_work_item(work_item_id, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps({"deleted": work_item_id}))
        else:
            click.echo(f"Deleted {work_item_id}")


@click.command("bug")
@click.argument("work_item_id")
@click.option("--severity", type=click.Choice(["critical", "high", "medium", "low"]), default=None)
@click.option("--reproducible/--not-reproducible", default=None)
@click.option("--steps", default=None, help="Steps to reproduce")
@click.option("--expected", default=None, help="Expected behavior")
@click.option("--actual", default=None, help="Actual behavior")
@click.option("--root-cause", default=None, help="Investigation root cause")
@click.option("--solution", default=None, help="Fix solution")
@click.option("--pr-link", default=None, help="Pull request for the fix")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def bug(
    ctx: click.Context,
    work_item_id: str,
    severity: str | None,
    reproducible: bool | None,
    steps: str | None,
    expected: str | None,
    actual: str | None,
    root_cause: str | None,
    solution: str | None,
    pr_link: str | None,
    as_json: bool,
) -> None:
    """Record triage, investigation or fix details on a bug."""

    def section(**values: Any) -> dict[str, Any] | None:
        present = {k: v for k, v in values.items() if v is not None}
        return present or None

    with get_db() as db:
        try:
            item = db.update_bug_metadata(
                work_item_id,
                triage=section(
                    severity=severity,
                    reproducible=reproducible,
                    steps_to_reproduce=steps,
                    expected_behavior=expected,
                    actual_behavior=actual,
                ),
                investigation=section(root_cause=root_cause),
                fix=section(solution=solution, pr_link=pr_link),
                actor=ctx.obj["actor"],
            )
            check = db.check_bug_advance(work_item_id)
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps({"work_item": item.to_dict(), "advance": check}, indent=2, default=str))
            return
        click.echo(f"Updated bug metadata on {item.id} ({item.phase})")
        if check["can_advance"]:
            click.echo("Ready to advance.")
        for blocker in check["blockers"]:
            click.echo(f"  blocked: {blocker}")


@click.group()
def timeline() -> None:
    """Manage the timeline items planned under a work item."""


@timeline.command("add")
@click.argument("work_item_id")
@click.argument("title")
@click.option("--horizon", type=click.Choice(VALID_HORIZONS), default="near_term")
@click.option("--status", type=click.Choice(VALID_TIMELINE_STATUSES), default="not_started")
@click.option("--difficulty", type=click.Choice(VALID_DIFFICULTIES), default="medium")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def timeline_add(
    ctx: click.Context,
    work_item_id: str,
    title: str,
    horizon: str,
    status: str,
    difficulty: str,
    as_json: bool,
) -> None:
    """Add a timeline item."""
    with get_db() as db:
        try:
            entry = db.add_timeline_item(
                work_item_id,
                title,
                horizon=horizon,
                status=status,
                difficulty=difficulty,
                actor=ctx.obj["actor"],
            )
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(entry.to_dict(), indent=2))
        else:
            click.echo(f"Added {entry.id}: {entry.title}")


@timeline.command("list")
@click.argument("work_item_id")
@click.option("--horizon", type=click.Choice(VALID_HORIZONS), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def timeline_list(work_item_id: str, horizon: str | None, as_json: bool) -> None:
    """List timeline items."""
    with get_db() as db:
        try:
            entries = db.list_timeline_items(work_item_id, horizon=horizon)
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps([t.to_dict() for t in entries], indent=2))
            return
        for t in entries:
            click.echo(f"{t.id} [{t.horizon}] {t.status:<12} {t.difficulty:<6} {t.title}")
        click.echo(f"\n{len(entries)} timeline items")


@timeline.command("update")
@click.argument("item_id")
@click.option("--title", default=None)
@click.option("--horizon", type=click.Choice(VALID_HORIZONS), default=None)
@click.option("--status", type=click.Choice(VALID_TIMELINE_STATUSES), default=None)
@click.option("--difficulty", type=click.Choice(VALID_DIFFICULTIES), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def timeline_update(
    ctx: click.Context,
    item_id: str,
    title: str | None,
    horizon: str | None,
    status: str | None,
    difficulty: str | None,
    as_json: bool,
) -> None:
    """Update a timeline item."""
    with get_db() as db:
        try:
            entry = db.update_timeline_item(
                item_id,
                title=title,
                horizon=horizon,
                status=status,
                difficulty=difficulty,
                actor=ctx.obj["actor"],
            )
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(entry.to_dict(), indent=2))
        else:
            click.echo(f"Updated {entry.id}: {entry.status}")


@timeline.command("remove")
@click.argument("item_id")
@click.pass_context
def timeline_remove(ctx: click.Context, item_id: str) -> None:
    """Remove a timeline item."""
    with get_db() as db:
        try:
            db.remove_timeline_item(item_id, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=False)
        click.echo(f"Removed {item_id}")


@click.command("events")
@click.argument("work_item_id")
@click.option("--limit", default=50, type=int, help="Max events (default 50)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def events_cmd(work_item_id: str, limit: int, as_json: bool) -> None:
    """Get event history for a work item, newest first."""
    with get_db() as db:
        try:
            event_list = db.get_work_item_events(work_item_id, limit=limit)
        except NotFoundError:
            click.echo(f"Not found: {work_item_id}", err=True)
            sys.exit(1)

        if as_json:
            click.echo(json_mod.dumps(event_list, indent=2, default=str))
            return

        if not event_list:
            click.echo(f"No events for {work_item_id}.")
            return

        for ev in event_list:
            old_val = ev.get("old_value", "")
            new_val = ev.get("new_value", "")
            detail = ""
            if old_val or new_val:
                detail = f" ({old_val} -> {new_val})" if old_val else f" ({new_val})"
            actor_str = f" by {ev['actor']}" if ev.get("actor") else ""
            click.echo(f"  #{ev['id']}  {ev['created_at']}  {ev['event_type']}{detail}{actor_str}")
        click.echo(f"\n{len(event_list)} events")


def register(cli: click.Group) -> None:
    """Register work item commands with the CLI group."""
    cli.add_command(create)
    cli.add_command(show)
    cli.add_command(list_work_items, "list")
    cli.add_command(update)
    cli.add_command(delete)
    cli.add_command(bug)
    cli.add_command(timeline)
    cli.add_command(events_cmd)
