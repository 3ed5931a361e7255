"""CLI for the waymark lifecycle engine.

Convention-based: discovers .waymark/ by walking up from cwd.

Usage:
    waymark init                                   # Initialize .waymark/ in cwd
    waymark create "Checkout v2" --type=feature    # Create work item
    waymark show <id>                              # Show work item details
    waymark list --type=feature                    # List work items
    waymark update <id> -f priority=high           # Edit name, purpose or fields
    waymark transition <id> build                  # Move one phase
    waymark upgrade <id>                           # Advance if ready
    waymark readiness <id>                         # Readiness report
    waymark review request <id>                    # Review gate actions
    waymark enhance <id> "Adds wallets"            # Start the next version
    waymark versions <id>                          # Show the version chain
    waymark promote <concept-id>                   # Concept -> feature
    waymark reject-concept <id> "reason..."        # Reject a concept
    waymark bug <id> --severity=high               # Edit bug metadata
    waymark serve                                  # Run the HTTP API
"""

from __future__ import annotations

import click

from waymark import __version__
from waymark.cli_commands import admin, items, lifecycle, review, versions
from waymark.validation import VALID_ROLES, sanitize_actor


@click.group()
@click.version_option(version=__version__, prog_name="waymark")
@click.option("--actor", default="cli", help="Actor identity for audit trail (default: cli)")
@click.option(
    "--role",
    type=click.Choice(sorted(VALID_ROLES), case_sensitive=False),
    default="member",
    help="Role the actor acts under for review actions (default: member)",
)
@click.pass_context
def cli(ctx: click.Context, actor: str, role: str) -> None:
    """Waymark — lifecycle engine for concepts, features and bugs."""
    cleaned, err = sanitize_actor(actor)
    if err:
        raise click.BadParameter(err, param_hint="--actor")
    ctx.ensure_object(dict)
    ctx.obj["actor"] = cleaned
    ctx.obj["role"] = role.lower()


items.register(cli)
lifecycle.register(cli)
review.register(cli)
versions.register(cli)
admin.register(cli)


def main() -> None:
    """Entry point for the waymark CLI."""
    cli()


if __name__ == "__main__":
    main()
