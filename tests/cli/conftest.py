"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from waymark.cli import cli

FEATURE_PURPOSE = "Let customers pay without leaving the cart"


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a waymark project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--prefix", "test"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


def _extract_id(create_output: str) -> str:
    """Extract the work item ID from 'Created test-abc123: Name [...]' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()


def _create_feature_in_build(runner: CliRunner, *extra: str) -> str:
    """Create a feature with its build requirements filled and upgrade it to build."""
    result = runner.invoke(
        cli,
        [
            "create",
            "Checkout",
            "--purpose",
            FEATURE_PURPOSE,
            "-f",
            "acceptance_criteria=Checkout completes in under two seconds",
            *extra,
        ],
    )
    assert result.exit_code == 0, result.output
    work_item_id = _extract_id(result.output)
    result = runner.invoke(cli, ["upgrade", work_item_id])
    assert result.exit_code == 0, result.output
    return work_item_id
