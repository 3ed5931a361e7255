# src/waymark/phases_data.py
"""Built-in lifecycle definitions for each work-item type.

Logic lives in phases.py; this file is pure data.

Each workflow lists its phases in order. A phase's ``required`` and
``optional`` entries are what it takes to ENTER that phase. Entries name a
field from the type's ``fields_schema`` and may override its thresholds or
hint for that particular phase. An entry with ``required_if`` only counts
while the named boolean field is True.

Field ``source`` values:
  - ``fields``: stored in the work item's ``fields`` JSON (editable via update)
  - ``item``: a column on the work item (``purpose``, ``rejection_reason``)
  - ``computed``: derived at readiness time (``has_scope``)
  - ``bug``: a dotted path into the structured bug metadata
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Feature -- shipped product work, the only type that can be versioned
# ---------------------------------------------------------------------------

_FEATURE: dict[str, Any] = {
    "type": "feature",
    "display_name": "Feature",
    "description": "Product capability planned, built, refined and launched; can be enhanced into new versions",
    "initial_phase": "design",
    "phases": [
        {"name": "design", "label": "Design"},
        {
            "name": "build",
            "label": "Build",
            "required": [
                {"field": "purpose", "min_length": 10},
                {"field": "acceptance_criteria"},
                {"field": "has_scope"},
            ],
            "optional": [
                {"field": "target_release"},
                {"field": "estimated_hours"},
                {"field": "priority"},
                {"field": "business_value"},
            ],
        },
        {
            "name": "refine",
            "label": "Refine",
            "required": [
                {"field": "progress_percent", "min_value": 80, "hint": "Update progress to 80%+ to move to refine"},
                {"field": "actual_start_date"},
            ],
            "optional": [
                {"field": "actual_hours"},
                {"field": "blockers_documented"},
            ],
        },
        {
            "name": "launch",
            "label": "Launch",
            "terminal": True,
            "review_gated": True,
            "required": [
                {"field": "feedback_addressed"},
                {"field": "progress_percent", "min_value": 95, "hint": "Update progress to 95%+ to launch"},
            ],
            "optional": [
                {"field": "quality_approved"},
                {"field": "actual_end_date"},
            ],
        },
    ],
    "fields_schema": [
        {"name": "purpose", "kind": "text", "source": "item", "label": "Purpose",
         "hint": "Explain why this work item matters in 2-3 sentences"},
        {"name": "has_scope", "kind": "boolean", "source": "computed", "must_be_true": True, "label": "Scope Definition",
         "hint": "Add timeline items or define acceptance criteria"},
        {"name": "acceptance_criteria", "kind": "text", "label": "Acceptance Criteria",
         "hint": 'Define what "done" looks like for this item'},
        {"name": "target_release", "kind": "text", "label": "Target Release", "hint": "Set a target release date or version"},
        {"name": "estimated_hours", "kind": "number", "label": "Estimated Hours", "hint": "Estimate the effort required"},
        {"name": "priority", "kind": "text", "label": "Priority", "hint": "Set priority to help with planning"},
        {"name": "business_value", "kind": "text", "label": "Business Value", "hint": "Describe the business impact"},
        {"name": "customer_impact", "kind": "text", "label": "Customer Impact",
         "hint": "Describe how customers will be affected"},
        {"name": "progress_percent", "kind": "number", "label": "Progress", "hint": "Update progress as work completes"},
        {"name": "actual_start_date", "kind": "date", "label": "Start Date", "hint": "Set the date work began"},
        {"name": "actual_hours", "kind": "number", "label": "Actual Hours", "hint": "Track actual time spent"},
        {"name": "blockers_documented", "kind": "boolean", "must_be_true": True, "label": "Blockers Review",
         "hint": "Review and document any blockers"},
        {"name": "feedback_addressed", "kind": "boolean", "must_be_true": True, "label": "Feedback Addressed",
         "hint": "Address all pending critical feedback"},
        {"name": "quality_approved", "kind": "boolean", "must_be_true": True, "label": "Quality Approved",
         "hint": "Mark as quality approved after review"},
        {"name": "actual_end_date", "kind": "date", "label": "End Date", "hint": "Set the completion date"},
    ],
}

# ---------------------------------------------------------------------------
# Concept -- exploratory idea that is validated (and promoted) or rejected
# ---------------------------------------------------------------------------

_CONCEPT: dict[str, Any] = {
    "type": "concept",
    "display_name": "Concept",
    "description": "Exploratory idea researched until it is validated or rejected",
    "initial_phase": "ideation",
    "phases": [
        {"name": "ideation", "label": "Ideation"},
        {
            "name": "research",
            "label": "Research",
            "required": [
                {"field": "hypothesis", "min_length": 10},
                {"field": "target_users", "min_length": 5},
            ],
            "optional": [
                {"field": "purpose"},
                {"field": "success_criteria"},
            ],
        },
        {
            "name": "validated",
            "label": "Validated",
            "terminal": True,
            "required": [
                {"field": "validation_results", "min_length": 20},
                {"field": "success_criteria", "min_length": 10},
            ],
            "optional": [
                {"field": "business_value"},
                {"field": "customer_impact"},
            ],
        },
    ],
    "branch_phases": [
        {
            "name": "rejected",
            "label": "Rejected",
            "terminal": True,
            "required": [
                {"field": "rejection_reason", "min_length": 10},
            ],
        },
    ],
    "fields_schema": [
        {"name": "purpose", "kind": "text", "source": "item", "label": "Purpose",
         "hint": "Explain why this work item matters in 2-3 sentences"},
        {"name": "rejection_reason", "kind": "text", "source": "item", "label": "Rejection Reason",
         "hint": "Explain why the concept is not being pursued (at least 10 characters)"},
        {"name": "hypothesis", "kind": "text", "label": "Hypothesis",
         "hint": "State the core assumption you need to validate"},
        {"name": "target_users", "kind": "text", "label": "Target Users",
         "hint": "Define who will benefit from this concept"},
        {"name": "success_criteria", "kind": "text", "label": "Success Criteria",
         "hint": "Define measurable criteria for validation"},
        {"name": "validation_results", "kind": "text", "label": "Validation Results",
         "hint": "Document research findings and evidence"},
        {"name": "business_value", "kind": "text", "label": "Business Value", "hint": "Describe the business impact"},
        {"name": "customer_impact", "kind": "text", "label": "Customer Impact",
         "hint": "Describe how customers will be affected"},
    ],
}

# ---------------------------------------------------------------------------
# Bug -- defect triaged, investigated, fixed and verified
# ---------------------------------------------------------------------------

_BUG: dict[str, Any] = {
    "type": "bug",
    "display_name": "Bug",
    "description": "Defect that accumulates triage, investigation and fix details as it is resolved",
    "initial_phase": "triage",
    "phases": [
        {"name": "triage", "label": "Triage"},
        {
            "name": "investigating",
            "label": "Investigating",
            "required": [
                {"field": "triage.severity"},
                {"field": "triage.reproducible"},
                {"field": "triage.steps_to_reproduce", "required_if": "triage.reproducible"},
            ],
            "optional": [
                {"field": "triage.expected_behavior"},
                {"field": "triage.actual_behavior"},
                {"field": "affected_users"},
            ],
        },
        {
            "name": "fixing",
            "label": "Fixing",
            "required": [
                {"field": "investigation.root_cause"},
            ],
            "optional": [
                {"field": "actual_start_date"},
                {"field": "estimated_hours"},
                {"field": "priority"},
            ],
        },
        {
            "name": "verified",
            "label": "Verified",
            "terminal": True,
            "review_gated": True,
            "required": [
                {"field": "fix.solution"},
            ],
            "optional": [
                {"field": "fix.pr_link"},
                {"field": "actual_hours"},
                {"field": "actual_end_date"},
            ],
        },
    ],
    "fields_schema": [
        {"name": "triage.severity", "kind": "text", "source": "bug", "label": "Severity",
         "hint": "Set severity level: critical, high, medium, or low"},
        {"name": "triage.reproducible", "kind": "boolean", "source": "bug", "label": "Reproducible",
         "hint": "Record whether the bug can be reproduced"},
        {"name": "triage.steps_to_reproduce", "kind": "text", "source": "bug", "label": "Steps to Reproduce",
         "hint": "Provide clear steps to reproduce the bug"},
        {"name": "triage.expected_behavior", "kind": "text", "source": "bug", "label": "Expected Behavior",
         "hint": "Describe what should have happened"},
        {"name": "triage.actual_behavior", "kind": "text", "source": "bug", "label": "Actual Behavior",
         "hint": "Describe what actually happened"},
        {"name": "investigation.root_cause", "kind": "text", "source": "bug", "label": "Root Cause",
         "hint": "Document the identified root cause of the bug"},
        {"name": "fix.solution", "kind": "text", "source": "bug", "label": "Solution",
         "hint": "Describe how the bug was fixed"},
        {"name": "fix.pr_link", "kind": "text", "source": "bug", "label": "Pull Request",
         "hint": "Link the pull request containing the fix"},
        {"name": "affected_users", "kind": "text", "label": "Affected Users", "hint": "Estimate how many users are impacted"},
        {"name": "actual_start_date", "kind": "date", "label": "Start Date", "hint": "Set the date work began"},
        {"name": "estimated_hours", "kind": "number", "label": "Estimated Hours", "hint": "Estimate the effort required"},
        {"name": "priority", "kind": "text", "label": "Priority", "hint": "Set priority to help with planning"},
        {"name": "actual_hours", "kind": "number", "label": "Actual Hours", "hint": "Track actual time spent"},
        {"name": "actual_end_date", "kind": "date", "label": "End Date", "hint": "Set the completion date"},
    ],
}

BUILT_IN_WORKFLOWS: dict[str, dict[str, Any]] = {
    "concept": _CONCEPT,
    "feature": _FEATURE,
    "bug": _BUG,
}
