"""CLI commands for phase movement: transition, upgrade, readiness, reject-concept, workflows."""

from __future__ import annotations

import json as json_mod
import sys

import click

from waymark.cli_common import fail, get_db
from waymark.errors import LifecycleError
from waymark.phases import get_registry
from waymark.types.lifecycle import ReadinessReport


def _echo_readiness(report: ReadinessReport) -> None:
    if report["next_phase"] is None:
        click.echo(f"{report['current_phase']} is terminal; nothing left to complete.")
        return
    click.echo(f"{report['current_phase']} -> {report['next_phase']}: {report['readiness_percent']}% ready")
    breakdown = report["breakdown"]
    click.echo(f"  required {breakdown['required_percent']}%, optional {breakdown['optional_percent']}%")
    if report["timeline"]["total"]:
        click.echo(f"  timeline: {report['timeline']['completed']}/{report['timeline']['total']} completed")
    for missing in report["missing_fields"]:
        click.echo(f"  missing: {missing['label']} ({missing['field']}) - {missing['hint']}")
    for blocker in report["blockers"]:
        click.echo(f"  blocked: {blocker}")
    for suggestion in report["suggestions"]:
        click.echo(f"  suggest: {suggestion}")
    click.echo("Can upgrade." if report["can_upgrade"] else "Cannot upgrade yet.")


@click.command()
@click.argument("work_item_id")
@click.argument("target_phase")
@click.option("--expect", "expected_phase", default=None, help="Fail if the item is no longer in this phase")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def transition(ctx: click.Context, work_item_id: str, target_phase: str, expected_phase: str | None, as_json: bool) -> None:
    """Move a work item one step to TARGET_PHASE."""
    with get_db() as db:
        try:
            before = db.get_work_item(work_item_id).phase
            item = db.transition_phase(
                work_item_id,
                target_phase,
                expected_current_phase=expected_phase,
                actor=ctx.obj["actor"],
            )
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"{item.id}: {before} -> {item.phase}")


@click.command()
@click.argument("work_item_id")
@click.option("--expect", "expected_phase", default=None, help="Fail if the item is no longer in this phase")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def upgrade(ctx: click.Context, work_item_id: str, expected_phase: str | None, as_json: bool) -> None:
    """Advance to the next phase if every required field is filled."""
    with get_db() as db:
        try:
            before = db.get_work_item(work_item_id).phase
            item = db.upgrade_phase(work_item_id, expected_current_phase=expected_phase, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"{item.id}: {before} -> {item.phase}")


@click.command()
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def readiness(work_item_id: str, as_json: bool) -> None:
    """Show how complete a work item is for its next phase."""
    with get_db() as db:
        try:
            report = db.compute_readiness(work_item_id)
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(report, indent=2))
            return
        _echo_readiness(report)


@click.command("reject-concept")
@click.argument("work_item_id")
@click.argument("reason")
@click.option("--archive", is_flag=True, help="Archive the concept as well")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reject_concept(ctx: click.Context, work_item_id: str, reason: str, archive: bool, as_json: bool) -> None:
    """Reject a concept with a reason of at least 10 characters."""
    with get_db() as db:
        try:
            item = db.reject_concept(work_item_id, reason, archive=archive, actor=ctx.obj["actor"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Rejected {item.id}{' (archived)' if item.archived else ''}")


@click.command()
@click.argument("type_name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def workflows(type_name: str | None, as_json: bool) -> None:
    """List the built-in workflows, or show one in detail."""
    registry = get_registry()
    if type_name is None:
        listed = registry.list_workflows()
        if as_json:
            click.echo(json_mod.dumps([wf.to_dict() for wf in listed], indent=2))
            return
        for wf in listed:
            line = " → ".join(wf.linear_names)
            branches = f" (+ {', '.join(b.name for b in wf.branch_phases)})" if wf.branch_phases else ""
            click.echo(f"  {wf.type:<10} {line}{branches}")
        return

    try:
        wf = registry.get_workflow(type_name)
    except LifecycleError:
        click.echo(f"Unknown type: {type_name}", err=True)
        sys.exit(1)
    if as_json:
        click.echo(json_mod.dumps(wf.to_dict(), indent=2))
        return
    click.echo(f"{wf.display_name} ({wf.type})")
    click.echo(f"  {wf.description}")
    click.echo("\n  Phases:")
    for phase in (*wf.phases, *wf.branch_phases):
        flags = []
        if phase.name == wf.initial_phase:
            flags.append("initial")
        if phase.is_terminal:
            flags.append("terminal")
        if phase.review_gated:
            flags.append("review gated")
        note = f" ({', '.join(flags)})" if flags else ""
        click.echo(f"    {phase.name:<14} {phase.label}{note}")
        if phase.required_fields:
            click.echo(f"      requires: {', '.join(f.name for f in phase.required_fields)}")
        if phase.optional_fields:
            click.echo(f"      optional: {', '.join(f.name for f in phase.optional_fields)}")


def register(cli: click.Group) -> None:
    """Register lifecycle commands with the CLI group."""
    cli.add_command(transition)
    cli.add_command(upgrade)
    cli.add_command(readiness)
    cli.add_command(reject_concept)
    cli.add_command(workflows)
