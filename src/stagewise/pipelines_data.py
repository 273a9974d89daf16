# src/stagewise/pipelines_data.py
"""Built-in project type pipelines.

Logic lives in pipeline.py; this file is pure data. Each entry is a
JSON-compatible dict with the same shape as a ``.stagewise/pipelines/*.json``
file, so a project can copy one of these as the starting point for its own.

References inside a pipeline use local names: reasons point at stage names,
stages and reasons point at approval ``id`` keys, and allow-lists map stage
names to stage names.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Standard -- the minimal three-stage pipeline
# ---------------------------------------------------------------------------

_STANDARD: dict[str, Any] = {
    "type": "standard",
    "display_name": "Standard",
    "description": "Intake, work, done. A single sign-off gate guards completion.",
    "stages": [
        {"name": "intake", "order": 0, "color": "#94a3b8"},
        {"name": "in_progress", "order": 1, "color": "#3b82f6", "max_instance_time_hours": 8},
        {"name": "done", "order": 2, "color": "#22c55e", "is_final": True, "approval": "sign_off"},
    ],
    "approvals": [
        {
            "id": "sign_off",
            "name": "Sign-off",
            "description": "Confirms the work was reviewed before it is marked done",
            "fields": [
                {"name": "signed_off", "type": "boolean", "expected": True, "description": "Work has been signed off"},
            ],
        },
    ],
    "reasons": [
        {"stage": "intake", "reason": "reopened", "fields": [{"name": "why", "type": "long_text", "required": True}]},
        {"stage": "in_progress", "reason": "assigned"},
        {
            "stage": "in_progress",
            "reason": "rework",
            "fields": [
                {"name": "defect_count", "type": "number", "required": True, "placeholder": "0"},
                {"name": "summary", "type": "short_text"},
            ],
        },
        {"stage": "done", "reason": "finished"},
    ],
    "transition_policy": {
        "elevated_roles": ["admin", "manager"],
        "allow_lists": {
            "ordinary": {
                "intake": ["in_progress"],
                "in_progress": ["done"],
            },
        },
    },
    "notification": {
        "subject": "{project_id} moved to {to_stage}",
        "body": "{actor} moved {project_id} from {from_stage} to {to_stage} ({reason}).",
    },
}

# ---------------------------------------------------------------------------
# Bookkeeping -- client bookkeeping with records, review and filing
# ---------------------------------------------------------------------------

_BOOKKEEPING: dict[str, Any] = {
    "type": "bookkeeping",
    "display_name": "Bookkeeping",
    "description": "Monthly bookkeeping for a client: collect records, reconcile, review, file.",
    "stages": [
        {"name": "awaiting_records", "order": 0, "color": "#a855f7", "assigned_role": "client_manager"},
        {
            "name": "bookkeeping",
            "order": 1,
            "color": "#3b82f6",
            "assigned_role": "bookkeeper",
            "max_instance_time_hours": 16,
        },
        {
            "name": "needs_input",
            "order": 2,
            "color": "#f59e0b",
            "assigned_role": "client_manager",
            "max_instance_time_hours": 24,
        },
        {
            "name": "manager_review",
            "order": 3,
            "color": "#ef4444",
            "assigned_role": "reviewer",
            "max_instance_time_hours": 8,
            "approval": "review_checklist",
        },
        {"name": "filed", "order": 4, "color": "#22c55e", "is_final": True},
    ],
    "approvals": [
        {
            "id": "review_checklist",
            "name": "Review checklist",
            "fields": [
                {"name": "accounts_reconciled", "type": "boolean", "expected": True},
                {"name": "unreconciled_items", "type": "number", "expected": 5, "comparison": "less_than"},
                {"name": "review_notes", "type": "long_text", "required": False},
            ],
        },
        {
            "id": "filing_confirmation",
            "name": "Filing confirmation",
            "fields": [
                {"name": "filed_with_authority", "type": "boolean", "expected": True},
                {
                    "name": "filing_channels",
                    "type": "multi_select",
                    "options": ["online", "post", "agent"],
                },
            ],
        },
    ],
    "reasons": [
        {"stage": "awaiting_records", "reason": "records requested"},
        {"stage": "bookkeeping", "reason": "records received"},
        {
            "stage": "bookkeeping",
            "reason": "input provided",
            "fields": [{"name": "input_summary", "type": "long_text", "required": True}],
        },
        {
            "stage": "needs_input",
            "reason": "missing documents",
            "description": "The client must supply documents before work can continue",
            "fields": [
                {
                    "name": "documents",
                    "type": "multi_select",
                    "required": True,
                    "options": ["bank statements", "invoices", "receipts", "payroll"],
                },
                {"name": "request_reference", "type": "short_text"},
            ],
        },
        {"stage": "needs_input", "reason": "clarification needed"},
        {
            "stage": "manager_review",
            "reason": "ready for review",
            "fields": [{"name": "hours_spent", "type": "number", "required": True}],
        },
        {"stage": "filed", "reason": "filed", "approval": "filing_confirmation"},
    ],
    "transition_policy": {
        "elevated_roles": ["admin", "manager"],
        "allow_lists": {
            "ordinary": {
                "awaiting_records": ["bookkeeping"],
                "needs_input": ["bookkeeping"],
            },
            "bookkeeper": {
                "awaiting_records": ["bookkeeping"],
                "bookkeeping": ["needs_input", "manager_review"],
                "needs_input": ["bookkeeping"],
            },
            "reviewer": {
                "manager_review": ["bookkeeping", "filed"],
            },
        },
    },
    "notification": {
        "subject": "[{project_type}] {project_id}: {from_stage} -> {to_stage}",
        "body": (
            "{actor} moved {project_id} from {from_stage} to {to_stage}.\n"
            "Reason: {reason}\n"
            "Assigned to: {assignee}"
        ),
    },
}

# ---------------------------------------------------------------------------
# Registry of built-in pipelines
# ---------------------------------------------------------------------------

BUILT_IN_PIPELINES: dict[str, dict[str, Any]] = {
    "standard": _STANDARD,
    "bookkeeping": _BOOKKEEPING,
}
