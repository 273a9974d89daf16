# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
"""TypedDict contracts for MCP tool handler input arguments.

Each TypedDict mirrors the JSON Schema ``inputSchema`` on the corresponding
``mcp.types.Tool`` definition. The ``TOOL_ARGS_MAP`` registry maps tool names
to their TypedDict class so the sync test can verify structural agreement.

The MCP SDK validates argument presence/types against JSON Schema before
handler invocation; ``cast()`` to these types is static narrowing only.
"""

# NOTE: Do NOT add ``from __future__ import annotations`` to this module.
# It breaks TypedDict.__required_keys__ / __optional_keys__ introspection
# on Python <3.14, which the sync test in test_input_type_contracts.py
# depends on.

from typing import Any, NotRequired, TypedDict

# ---------------------------------------------------------------------------
# pipeline.py handlers
# ---------------------------------------------------------------------------


class ListReasonsArgs(TypedDict):
    stage_id: str


class ListCustomFieldsArgs(TypedDict):
    reason_id: str


class ListApprovalFieldsArgs(TypedDict):
    stage_approval_id: str


class GetProjectTypeArgs(TypedDict):
    type: str


# ---------------------------------------------------------------------------
# transitions.py handlers
# ---------------------------------------------------------------------------


class GetProjectArgs(TypedDict):
    project_id: str


class ListLegalTransitionsArgs(TypedDict):
    project_id: str
    actor: str
    role: NotRequired[str]


class TransitionArgs(TypedDict):
    project_id: str
    actor: str
    target_stage: str
    reason: str
    role: NotRequired[str]
    field_responses: NotRequired[dict[str, Any]]
    approval_responses: NotRequired[dict[str, Any]]
    notes: NotRequired[str]
    notes_html: NotRequired[str]
    attachments: NotRequired[list[dict[str, Any]]]


class CommitTransitionArgs(TransitionArgs):
    expected_version: NotRequired[int]


class GetElapsedTimeArgs(TypedDict):
    project_id: str


class BulkMoveEligibilityArgs(TypedDict):
    type: str
    target_stage: str


class BulkTransitionArgs(TypedDict):
    project_ids: list[str]
    actor: str
    target_stage: str
    reason: str
    role: NotRequired[str]
    notes: NotRequired[str]
    notes_html: NotRequired[str]


TOOL_ARGS_MAP: dict[str, type] = {
    # pipeline.py
    "list_reasons": ListReasonsArgs,
    "list_custom_fields": ListCustomFieldsArgs,
    "list_approval_fields": ListApprovalFieldsArgs,
    "get_project_type": GetProjectTypeArgs,
    # transitions.py
    "get_project": GetProjectArgs,
    "list_legal_transitions": ListLegalTransitionsArgs,
    "validate_transition": TransitionArgs,
    "commit_transition": CommitTransitionArgs,
    "get_elapsed_time": GetElapsedTimeArgs,
    "get_missing_roles": GetProjectArgs,
    "get_transition_history": GetProjectArgs,
    "bulk_move_eligibility": BulkMoveEligibilityArgs,
    "bulk_transition": BulkTransitionArgs,
}
