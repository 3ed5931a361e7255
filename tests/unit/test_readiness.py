"""Tests for the readiness calculator."""

from __future__ import annotations

from typing import Any

import pytest

from waymark.errors import ValidationError
from waymark.readiness import ReadinessInput, compute_readiness
from waymark.review import MSG_NOT_REQUESTED, MSG_PENDING


def _feature(phase: str = "design", **kwargs: object) -> ReadinessInput:
    return ReadinessInput.from_snapshot({"type": "feature", "phase": phase, **kwargs})


def _bug(phase: str, metadata: dict[str, Any], **kwargs: object) -> ReadinessInput:
    return ReadinessInput.from_snapshot({"type": "bug", "phase": phase, "bug_metadata": metadata, **kwargs})


class TestScoring:
    def test_empty_feature_in_design(self) -> None:
        report = compute_readiness(_feature())
        assert report["next_phase"] == "build"
        assert report["readiness_percent"] == 0
        assert report["can_upgrade"] is False
        assert [m["field"] for m in report["missing_fields"]] == ["purpose", "acceptance_criteria", "has_scope"]
        assert all(m["required"] for m in report["missing_fields"])
        assert len(report["suggestions"]) == 4

    def test_required_complete_optional_empty(self) -> None:
        report = compute_readiness(
            _feature(purpose="Let customers pay faster", fields={"acceptance_criteria": "Pays in one click"})
        )
        assert report["readiness_percent"] == 70
        assert report["breakdown"] == {"required_percent": 100, "optional_percent": 0}
        assert report["can_upgrade"] is True
        assert report["completed_fields"] == ["purpose", "acceptance_criteria", "has_scope"]

    def test_partial_required_and_optional(self) -> None:
        report = compute_readiness(
            _feature(
                purpose="Let customers pay faster",
                fields={"priority": "high", "estimated_hours": 12},
            )
        )
        # 1 of 3 required, 2 of 4 optional
        assert report["breakdown"] == {"required_percent": 33, "optional_percent": 50}
        assert report["readiness_percent"] == round(70 / 3 + 15)
        assert report["can_upgrade"] is False

    def test_short_purpose_is_missing(self) -> None:
        report = compute_readiness(_feature(purpose="Pay", fields={"acceptance_criteria": "Pays"}))
        assert [m["field"] for m in report["missing_fields"]] == ["purpose"]

    def test_timeline_items_satisfy_scope(self) -> None:
        report = compute_readiness(_feature(purpose="Let customers pay faster"), timeline_item_count=2)
        assert "has_scope" in report["completed_fields"]
        assert report["timeline"] == {"total": 2, "completed": 0}

    def test_progress_threshold(self) -> None:
        below = compute_readiness(_feature("build", fields={"progress_percent": 79, "actual_start_date": "2026-01-05"}))
        at = compute_readiness(_feature("build", fields={"progress_percent": 80, "actual_start_date": "2026-01-05"}))
        assert [m["field"] for m in below["missing_fields"]] == ["progress_percent"]
        assert below["missing_fields"][0]["hint"] == "Update progress to 80%+ to move to refine"
        assert at["can_upgrade"] is True

    def test_missing_field_uses_schema_hint(self) -> None:
        report = compute_readiness(ReadinessInput(type="concept", phase="ideation"))
        missing = {m["field"]: m for m in report["missing_fields"]}
        assert missing["hypothesis"]["hint"] == "State the core assumption you need to validate"


class TestTerminal:
    def test_terminal_phase_reports_complete(self) -> None:
        report = compute_readiness(_feature("launch"))
        assert report["next_phase"] is None
        assert report["is_terminal"] is True
        assert report["readiness_percent"] == 100
        assert report["can_upgrade"] is False

    def test_rejected_concept(self) -> None:
        report = compute_readiness(ReadinessInput(type="concept", phase="rejected"))
        assert report["is_terminal"] is True
        assert report["next_phase"] is None


class TestBlockers:
    def test_review_blocks_launch(self) -> None:
        report = compute_readiness(
            _feature(
                "refine",
                fields={"progress_percent": 100, "feedback_addressed": True},
                review_enabled=True,
            )
        )
        assert report["missing_fields"] == []
        assert report["blockers"] == [MSG_NOT_REQUESTED]
        # The gate is enforced by the transition, not by the readiness verdict.
        assert report["can_upgrade"] is True

    def test_approved_review_unblocks(self) -> None:
        report = compute_readiness(
            _feature(
                "refine",
                fields={"progress_percent": 100, "feedback_addressed": True},
                review_enabled=True,
                review_status="approved",
            )
        )
        assert report["can_upgrade"] is True

    def test_bug_blockers_come_from_review_only(self) -> None:
        report = compute_readiness(
            _bug("fixing", {"fix": {"solution": "Debounce the save button"}}, review_enabled=True, review_status="pending")
        )
        assert report["missing_fields"] == []
        assert report["blockers"] == [MSG_PENDING]
        assert report["can_upgrade"] is True


class TestConditionalRequirements:
    def test_reproducible_bug_needs_steps(self) -> None:
        report = compute_readiness(_bug("triage", {"triage": {"severity": "low", "reproducible": True}}))
        assert [m["field"] for m in report["missing_fields"]] == ["triage.steps_to_reproduce"]
        assert report["breakdown"]["required_percent"] == 67
        assert report["blockers"] == []
        assert report["can_upgrade"] is False

    def test_reproducible_bug_with_steps(self) -> None:
        report = compute_readiness(
            _bug("triage", {"triage": {"severity": "low", "reproducible": True, "steps_to_reproduce": "Click save twice"}})
        )
        assert report["completed_fields"][:3] == ["triage.severity", "triage.reproducible", "triage.steps_to_reproduce"]
        assert report["can_upgrade"] is True

    def test_unreproducible_bug_skips_steps(self) -> None:
        report = compute_readiness(_bug("triage", {"triage": {"severity": "low", "reproducible": False}}))
        assert report["missing_fields"] == []
        assert report["breakdown"]["required_percent"] == 100
        assert "triage.steps_to_reproduce" not in report["completed_fields"]
        assert report["can_upgrade"] is True

    def test_unknown_reproducibility_skips_steps(self) -> None:
        report = compute_readiness(_bug("triage", {"triage": {"severity": "low"}}))
        assert [m["field"] for m in report["missing_fields"]] == ["triage.reproducible"]


# Each step fills one more required field for the next phase.
_FILL_ORDER: list[tuple[str, str, list[tuple[str, str, object]]]] = [
    (
        "feature",
        "design",
        [("item", "purpose", "Let customers pay faster"), ("fields", "acceptance_criteria", "Pays in one click")],
    ),
    ("feature", "build", [("fields", "progress_percent", 85), ("fields", "actual_start_date", "2026-01-05")]),
    ("feature", "refine", [("fields", "feedback_addressed", True), ("fields", "progress_percent", 100)]),
    ("concept", "ideation", [("fields", "hypothesis", "Users want a dark theme"), ("fields", "target_users", "Night owls")]),
    (
        "concept",
        "research",
        [
            ("fields", "validation_results", "Survey of 200 users: 64% would switch"),
            ("fields", "success_criteria", "Half of active users enable it"),
        ],
    ),
    (
        "bug",
        "triage",
        [
            ("bug", "triage.severity", "high"),
            ("bug", "triage.reproducible", True),
            ("bug", "triage.steps_to_reproduce", "Click save twice"),
        ],
    ),
    ("bug", "investigating", [("bug", "investigation.root_cause", "Double submit races the autosave")]),
    ("bug", "fixing", [("bug", "fix.solution", "Debounce the save button")]),
]


class TestMonotonicity:
    @pytest.mark.parametrize(
        ("work_item_type", "phase", "steps"), _FILL_ORDER, ids=[f"{t}-{p}" for t, p, _ in _FILL_ORDER]
    )
    def test_readiness_never_drops_as_required_fields_fill(
        self, work_item_type: str, phase: str, steps: list[tuple[str, str, object]]
    ) -> None:
        data: dict[str, Any] = {"type": work_item_type, "phase": phase, "fields": {}, "bug_metadata": {}}
        previous = compute_readiness(ReadinessInput.from_snapshot(data))
        assert previous["can_upgrade"] is False
        for where, name, value in steps:
            if where == "item":
                data[name] = value
            elif where == "fields":
                data["fields"][name] = value
            else:
                section, _, key = name.partition(".")
                data["bug_metadata"].setdefault(section, {})[key] = value
            report = compute_readiness(ReadinessInput.from_snapshot(data))
            assert report["readiness_percent"] >= previous["readiness_percent"]
            assert report["breakdown"]["required_percent"] >= previous["breakdown"]["required_percent"]
            previous = report
        assert previous["breakdown"]["required_percent"] == 100
        assert previous["can_upgrade"] is True


class TestSnapshotValidation:
    def test_requires_type_and_phase(self) -> None:
        with pytest.raises(ValidationError, match="non-empty 'phase'") as exc_info:
            ReadinessInput.from_snapshot({"type": "feature"})
        assert exc_info.value.fields == ["phase"]

    def test_fields_must_be_object(self) -> None:
        with pytest.raises(ValidationError, match="'fields' must be an object"):
            ReadinessInput.from_snapshot({"type": "feature", "phase": "design", "fields": ["x"]})

    def test_invalid_review_status(self) -> None:
        with pytest.raises(ValidationError, match="Invalid review_status"):
            ReadinessInput.from_snapshot({"type": "feature", "phase": "refine", "review_status": "maybe"})

    def test_unknown_phase(self) -> None:
        with pytest.raises(ValidationError, match="Unknown phase"):
            compute_readiness(ReadinessInput(type="feature", phase="shipping"))
