"""Shared CLI helpers.

Provides ``get_db()`` and ``fail()`` so that both ``cli.py`` and the
``cli_commands/*.py`` modules can use them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import NoReturn

import click

from waymark.core import WAYMARK_DIR_NAME, WaymarkDB
from waymark.errors import LifecycleError


def get_db() -> WaymarkDB:
    """Discover .waymark/ and return an initialized WaymarkDB."""
    try:
        return WaymarkDB.from_project()
    except FileNotFoundError:
        click.echo(f"No {WAYMARK_DIR_NAME}/ found. Run 'waymark init' first.", err=True)
        sys.exit(1)


def fail(error: LifecycleError | str, *, as_json: bool) -> NoReturn:
    """Report an error in the requested format and exit 1."""
    if as_json:
        payload = error.to_dict() if isinstance(error, LifecycleError) else {"message": error}
        click.echo(json_mod.dumps({"error": payload}))
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def parse_key_values(pairs: tuple[str, ...], *, as_json: bool) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a dict."""
    parsed: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            fail(f"Invalid field format: {pair} (expected key=value)", as_json=as_json)
        key, value = pair.split("=", 1)
        parsed[key] = value
    return parsed
