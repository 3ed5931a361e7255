"""Tests for guarded phase transitions and auto-upgrade."""

from __future__ import annotations

import pytest

from waymark.core import WaymarkDB
from waymark.errors import ConflictError, IncompleteDataError, NotFoundError, ValidationError
from tests._db_factory import FEATURE_FIELDS, advance_bug, advance_feature


class TestTransitionPhase:
    def test_forward_step(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        moved = db.transition_phase(item.id, "build", actor="alice")
        assert moved.phase == "build"
        assert moved.phase_label == "Build"

    def test_transition_does_not_require_fields(self, db: WaymarkDB) -> None:
        """Readiness is advisory; an explicit transition skips the field check."""
        item = db.create_work_item("Bare")
        assert db.transition_phase(item.id, "build").phase == "build"

    def test_backward_step(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        db.transition_phase(item.id, "build")
        assert db.transition_phase(item.id, "design").phase == "design"

    def test_skip_rejected(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        with pytest.raises(ValidationError, match="Allowed targets: build"):
            db.transition_phase(item.id, "refine")
        assert db.get_work_item(item.id).phase == "design"

    def test_unknown_target(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        with pytest.raises(ValidationError, match="Unknown phase 'shipped'"):
            db.transition_phase(item.id, "shipped")

    def test_terminal_is_final(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        advance_feature(db, item.id, "launch")
        with pytest.raises(ValidationError, match="terminal"):
            db.transition_phase(item.id, "refine")

    def test_missing_item(self, db: WaymarkDB) -> None:
        with pytest.raises(NotFoundError):
            db.transition_phase("nope-1", "build")

    def test_records_phase_event(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        db.transition_phase(item.id, "build", actor="alice")
        event = db.get_work_item_events(item.id)[0]
        assert event["event_type"] == "phase_changed"
        assert (event["old_value"], event["new_value"]) == ("design", "build")
        assert event["actor"] == "alice"

    def test_allowed_transitions(self, db: WaymarkDB) -> None:
        concept = db.create_work_item("Idea", type="concept")
        assert db.allowed_transitions(concept.id) == ["research", "rejected"]


class TestExpectedPhase:
    def test_matching_expectation(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        assert db.transition_phase(item.id, "build", expected_current_phase="design").phase == "build"

    def test_stale_expectation_conflicts(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        db.transition_phase(item.id, "build")
        with pytest.raises(ConflictError, match="is in phase 'build', not 'design'") as exc_info:
            db.transition_phase(item.id, "build", expected_current_phase="design")
        assert exc_info.value.kind == "conflict"
        assert db.get_work_item(item.id).phase == "build"

    def test_illegal_step_from_expectation_is_validation(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        with pytest.raises(ValidationError):
            db.transition_phase(item.id, "launch", expected_current_phase="design")


class TestReviewGate:
    def test_launch_blocked_without_review(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Gated", review_enabled=True)
        advance_feature(db, item.id, "refine")
        with pytest.raises(ValidationError, match="Review has not been requested yet") as exc_info:
            db.transition_phase(item.id, "launch")
        assert exc_info.value.fields == ["review_status"]

    def test_launch_blocked_while_pending(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Gated", review_enabled=True)
        advance_feature(db, item.id, "refine")
        db.request_review(item.id, actor="dev")
        with pytest.raises(ValidationError, match="Review is pending approval"):
            db.transition_phase(item.id, "launch")

    def test_launch_allowed_after_approval(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Gated", review_enabled=True)
        advance_feature(db, item.id, "refine")
        db.request_review(item.id, actor="dev")
        db.approve_review(item.id, actor="lead", actor_role="owner")
        assert db.transition_phase(item.id, "launch").phase == "launch"

    def test_review_disabled_not_gated(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Ungated")
        advance_feature(db, item.id, "refine")
        assert db.transition_phase(item.id, "launch").phase == "launch"

    def test_backward_move_never_gated(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Gated", review_enabled=True)
        advance_feature(db, item.id, "refine")
        assert db.transition_phase(item.id, "build").phase == "build"


class TestBugGuards:
    def test_triage_requires_metadata(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        with pytest.raises(ValidationError, match="Complete triage: Severity, Reproducible status") as exc_info:
            db.transition_phase(bug.id, "investigating")
        assert exc_info.value.fields == ["bug_metadata"]

    def test_investigating_requires_root_cause(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        advance_bug(db, bug.id, "investigating")
        with pytest.raises(ValidationError, match="Document root cause before fixing"):
            db.transition_phase(bug.id, "fixing")

    def test_verified_requires_approved_review(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug", review_enabled=True)
        advance_bug(db, bug.id, "fixing")
        db.update_bug_metadata(bug.id, fix={"solution": "Debounce the save button"})
        with pytest.raises(ValidationError, match="Review has not been requested yet"):
            db.transition_phase(bug.id, "verified")

    def test_full_bug_lifecycle(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug", review_enabled=True)
        final = advance_bug(db, bug.id, "verified")
        assert final.phase == "verified"
        assert final.is_terminal is True
        assert final.review_status == "approved"

    def test_check_bug_advance(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        assert db.check_bug_advance(bug.id)["can_advance"] is False
        db.update_bug_metadata(bug.id, triage={"severity": "low", "reproducible": False})
        assert db.check_bug_advance(bug.id) == {"can_advance": True, "blockers": []}

    def test_check_bug_advance_on_feature(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Feature")
        with pytest.raises(ValidationError, match="not a bug"):
            db.check_bug_advance(item.id)


class TestUpgradePhase:
    def test_upgrade_when_ready(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout", purpose="Let customers pay without leaving the cart")
        db.update_work_item(item.id, fields=FEATURE_FIELDS["build"])
        assert db.upgrade_phase(item.id).phase == "build"

    def test_upgrade_missing_fields(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        with pytest.raises(IncompleteDataError, match="missing purpose, acceptance_criteria, has_scope") as exc_info:
            db.upgrade_phase(item.id)
        assert exc_info.value.fields == ["purpose", "acceptance_criteria", "has_scope"]
        assert exc_info.value.kind == "incomplete_data"
        assert db.get_work_item(item.id).phase == "design"

    def test_upgrade_optional_fields_never_block(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout", purpose="Let customers pay without leaving the cart")
        db.update_work_item(item.id, fields=FEATURE_FIELDS["build"])
        assert db.compute_readiness(item.id)["readiness_percent"] == 70
        assert db.upgrade_phase(item.id).phase == "build"

    def test_timeline_item_does_not_replace_criteria(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout", purpose="Let customers pay without leaving the cart")
        db.add_timeline_item(item.id, "Wire up the payment form")
        with pytest.raises(IncompleteDataError) as exc_info:
            db.upgrade_phase(item.id)
        assert exc_info.value.fields == ["acceptance_criteria"]

    def test_upgrade_reproducible_bug_without_steps(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        db.update_bug_metadata(bug.id, triage={"severity": "high", "reproducible": True})
        assert db.compute_readiness(bug.id)["can_upgrade"] is False
        with pytest.raises(IncompleteDataError, match="missing triage.steps_to_reproduce") as exc_info:
            db.upgrade_phase(bug.id)
        assert exc_info.value.fields == ["triage.steps_to_reproduce"]
        assert db.get_work_item(bug.id).phase == "triage"

    def test_upgrade_terminal(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        advance_feature(db, item.id, "launch")
        with pytest.raises(ValidationError, match="terminal"):
            db.upgrade_phase(item.id)

    def test_upgrade_stale_expectation(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        with pytest.raises(ConflictError):
            db.upgrade_phase(item.id, expected_current_phase="build")

    def test_upgrade_review_blocker_surfaces_as_validation(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Gated", review_enabled=True)
        advance_feature(db, item.id, "refine")
        db.update_work_item(item.id, fields=FEATURE_FIELDS["launch"])
        with pytest.raises(ValidationError, match="Review has not been requested yet"):
            db.upgrade_phase(item.id)

    def test_concept_upgrade_never_reaches_rejected(self, db: WaymarkDB) -> None:
        concept = db.create_work_item("Idea", type="concept")
        db.update_work_item(concept.id, fields={"hypothesis": "People want this badly", "target_users": "Everyone"})
        assert db.upgrade_phase(concept.id).phase == "research"


class TestReadinessLookup:
    def test_compute_readiness_uses_timeline(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Checkout")
        db.add_timeline_item(item.id, "Design the form", status="completed")
        db.add_timeline_item(item.id, "Build the form")
        report = db.compute_readiness(item.id)
        assert report["timeline"] == {"total": 2, "completed": 1}
        assert "has_scope" in report["completed_fields"]

    def test_compute_readiness_missing_item(self, db: WaymarkDB) -> None:
        with pytest.raises(NotFoundError):
            db.compute_readiness("nope-1")


class TestBugMetadataUpdates:
    def test_partial_update(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        db.update_bug_metadata(bug.id, triage={"severity": "high"})
        updated = db.update_bug_metadata(bug.id, triage={"reproducible": False}, actor="qa")
        assert updated.bug_metadata.triage.severity == "high"
        assert updated.bug_metadata.triage.reproducible is False
        event = db.get_work_item_events(bug.id)[0]
        assert event["event_type"] == "bug_metadata_updated"
        assert event["comment"] == "triage"

    def test_unchanged_update_is_noop(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug", bug_metadata={"triage": {"severity": "low"}})
        db.update_bug_metadata(bug.id, triage={"severity": "low"})
        assert len(db.get_work_item_events(bug.id)) == 1

    def test_invalid_metadata_leaves_item_untouched(self, db: WaymarkDB) -> None:
        bug = db.create_work_item("Crash", type="bug")
        with pytest.raises(ValidationError):
            db.update_bug_metadata(bug.id, triage={"severity": "apocalyptic"})
        assert db.get_work_item(bug.id).bug_metadata.triage.severity is None

    def test_feature_rejected(self, db: WaymarkDB) -> None:
        item = db.create_work_item("Feature")
        with pytest.raises(ValidationError, match="only be set on bugs"):
            db.update_bug_metadata(item.id, fix={"solution": "n/a"})
