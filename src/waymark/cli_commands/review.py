"""CLI commands for the review gate: waymark review request|approve|reject|cancel|enable|disable."""

from __future__ import annotations

import json as json_mod

import click

from waymark.cli_common import fail, get_db
from waymark.core import WorkItem
from waymark.errors import LifecycleError


def _report(item: WorkItem, as_json: bool) -> None:
    if as_json:
        click.echo(json_mod.dumps(item.to_dict(), indent=2, default=str))
    elif not item.review_enabled:
        click.echo(f"{item.id}: review disabled")
    else:
        click.echo(f"{item.id}: review {item.review_status or 'not requested'}")


@click.group()
def review() -> None:
    """Act on a work item's review gate."""


@review.command("request")
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_request(ctx: click.Context, work_item_id: str, as_json: bool) -> None:
    """Request a review."""
    with get_db() as db:
        try:
            item = db.request_review(work_item_id, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


@review.command("approve")
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_approve(ctx: click.Context, work_item_id: str, as_json: bool) -> None:
    """Approve a pending review (owner or admin)."""
    with get_db() as db:
        try:
            item = db.approve_review(work_item_id, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


@review.command("reject")
@click.argument("work_item_id")
@click.argument("reason")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_reject(ctx: click.Context, work_item_id: str, reason: str, as_json: bool) -> None:
    """Reject a pending review with a reason (owner or admin)."""
    with get_db() as db:
        try:
            item = db.reject_review(work_item_id, reason, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


@review.command("cancel")
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_cancel(ctx: click.Context, work_item_id: str, as_json: bool) -> None:
    """Withdraw a pending review request."""
    with get_db() as db:
        try:
            item = db.cancel_review(work_item_id, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


@review.command("enable")
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_enable(ctx: click.Context, work_item_id: str, as_json: bool) -> None:
    """Turn the review gate on (owner or admin)."""
    with get_db() as db:
        try:
            item = db.set_review_enabled(work_item_id, True, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


@review.command("disable")
@click.argument("work_item_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def review_disable(ctx: click.Context, work_item_id: str, as_json: bool) -> None:
    """Turn the review gate off and clear review state (owner or admin)."""
    with get_db() as db:
        try:
            item = db.set_review_enabled(work_item_id, False, actor=ctx.obj["actor"], actor_role=ctx.obj["role"])
        except LifecycleError as e:
            fail(e, as_json=as_json)
        _report(item, as_json)


def register(cli: click.Group) -> None:
    """Register review commands with the CLI group."""
    cli.add_command(review)
