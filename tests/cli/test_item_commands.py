"""CLI tests for work item commands (create, show, list, update, delete, bug, timeline, events)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from waymark.cli import cli
from tests.cli.conftest import FEATURE_PURPOSE, _extract_id


class TestCreate:
    def test_create_feature(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Checkout"])
        assert result.exit_code == 0
        assert result.output.startswith("Created test-")
        assert "Checkout [feature, design]" in result.output

    def test_create_concept_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(
            cli, ["create", "Dark mode", "--type", "concept", "-f", "hypothesis=People code at night", "--json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["type"] == "concept"
        assert data["phase"] == "ideation"
        assert data["fields"] == {"hypothesis": "People code at night"}

    def test_create_coerces_numbers(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Search", "-f", "estimated_hours=12", "--json"])
        assert json.loads(result.output)["fields"] == {"estimated_hours": 12}

    def test_create_unknown_field(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Bad", "-f", "colour=red"])
        assert result.exit_code == 1
        assert "Unknown field 'colour'" in result.output

    def test_create_bad_field_format(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Bad", "-f", "priority"])
        assert result.exit_code == 1
        assert "expected key=value" in result.output

    def test_create_error_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Idea", "--type", "concept", "--review", "--json"])
        assert result.exit_code == 1
        error = json.loads(result.output)["error"]
        assert error["kind"] == "validation"
        assert error["fields"] == ["review_enabled"]

    def test_create_records_actor(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["--actor", "alice", "create", "Checkout"])
        wid = _extract_id(result.output)
        events = json.loads(runner.invoke(cli, ["events", wid, "--json"]).output)
        assert events[0]["event_type"] == "created"
        assert events[0]["actor"] == "alice"

    def test_invalid_actor(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["--actor", "", "create", "Checkout"])
        assert result.exit_code != 0


class TestShowAndList:
    def test_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout", "--purpose", FEATURE_PURPOSE]).output)
        result = runner.invoke(cli, ["show", wid])
        assert result.exit_code == 0
        assert f"ID:       {wid}" in result.output
        assert "Version:  1" in result.output
        assert FEATURE_PURPOSE in result.output

    def test_show_not_found(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "test-missing"])
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_list_filters_by_type(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["create", "Checkout"])
        runner.invoke(cli, ["create", "Crash on save", "--type", "bug"])
        result = runner.invoke(cli, ["list", "--type", "bug"])
        assert result.exit_code == 0
        assert "Crash on save" in result.output
        assert "Checkout" not in result.output
        assert "1 work items" in result.output

    def test_list_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        runner.invoke(cli, ["create", "Checkout"])
        data = json.loads(runner.invoke(cli, ["list", "--json"]).output)
        assert [i["name"] for i in data] == ["Checkout"]

    def test_no_project(self, tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = cli_runner.invoke(cli, ["list"])
        assert result.exit_code == 1
        assert "waymark init" in result.output


class TestUpdateAndDelete:
    def test_update_fields_and_clear(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout", "-f", "priority=high"]).output)
        result = runner.invoke(cli, ["update", wid, "--name", "Checkout v1", "-f", "priority=", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["name"] == "Checkout v1"
        assert "priority" not in data["fields"]

    def test_delete(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout"]).output)
        result = runner.invoke(cli, ["delete", wid, "--yes"])
        assert result.exit_code == 0
        assert f"Deleted {wid}" in result.output
        assert runner.invoke(cli, ["show", wid]).exit_code == 1

    def test_delete_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["delete", "test-missing", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["kind"] == "not_found"


class TestBugCommand:
    def test_triage_then_upgrade(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Crash on save", "--type", "bug"]).output)
        result = runner.invoke(cli, ["bug", wid, "--severity", "high", "--reproducible", "--steps", "Click save twice"])
        assert result.exit_code == 0
        assert "Ready to advance." in result.output

        result = runner.invoke(cli, ["upgrade", wid])
        assert result.exit_code == 0
        assert f"{wid}: triage -> investigating" in result.output

    def test_blockers_listed(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Crash on save", "--type", "bug"]).output)
        result = runner.invoke(cli, ["bug", wid, "--severity", "low"])
        assert result.exit_code == 0
        assert "blocked:" in result.output

    def test_bug_on_feature(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout"]).output)
        result = runner.invoke(cli, ["bug", wid, "--severity", "low"])
        assert result.exit_code == 1


class TestTimelineCommands:
    def test_add_list_update_remove(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout"]).output)
        result = runner.invoke(cli, ["timeline", "add", wid, "Payment form", "--horizon", "mid_term"])
        assert result.exit_code == 0
        tl_id = result.output.split(":")[0].replace("Added ", "").strip()

        listed = runner.invoke(cli, ["timeline", "list", wid])
        assert "Payment form" in listed.output
        assert "1 timeline items" in listed.output

        result = runner.invoke(cli, ["timeline", "update", tl_id, "--status", "completed"])
        assert result.exit_code == 0
        assert "completed" in result.output

        result = runner.invoke(cli, ["timeline", "remove", tl_id])
        assert result.exit_code == 0
        assert "0 timeline items" in runner.invoke(cli, ["timeline", "list", wid]).output

    def test_timeline_satisfies_scope(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout", "--purpose", FEATURE_PURPOSE]).output)
        runner.invoke(cli, ["timeline", "add", wid, "Payment form"])
        report = json.loads(runner.invoke(cli, ["readiness", wid, "--json"]).output)
        assert "has_scope" in report["completed_fields"]


class TestEventsCommand:
    def test_events_text(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        wid = _extract_id(runner.invoke(cli, ["create", "Checkout"]).output)
        runner.invoke(cli, ["update", wid, "-f", "priority=high"])
        result = runner.invoke(cli, ["events", wid])
        assert result.exit_code == 0
        assert "updated" in result.output
        assert "2 events" in result.output

    def test_events_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["events", "test-missing"])
        assert result.exit_code == 1
