"""TypedDicts for pipeline query return types (db_transitions.py and surfaces)."""

from __future__ import annotations

from typing import TypedDict


class StageInfo(TypedDict):
    id: str
    name: str
    order: int
    color: str
    assigned_role_id: str | None
    assigned_user_id: str | None
    max_instance_time_hours: float | None
    is_final: bool
    stage_approval_id: str | None


class ReasonInfo(TypedDict):
    id: str
    stage_id: str
    reason: str
    order: int
    description: str
    stage_approval_id: str | None


class _CustomFieldRequired(TypedDict):
    id: str
    reason_id: str
    field_name: str
    field_type: str
    is_required: bool
    order: int


class CustomFieldInfo(_CustomFieldRequired, total=False):
    """A reason's custom field. ``options`` only appears on multi-select fields."""

    options: list[str]
    placeholder: str
    description: str


class _ApprovalFieldRequired(TypedDict):
    id: str
    stage_approval_id: str
    field_name: str
    field_type: str
    is_required: bool
    order: int


class ApprovalFieldInfo(_ApprovalFieldRequired, total=False):
    """An approval gate field. Expectation keys appear only when configured."""

    expected_value_boolean: bool
    expected_value_number: float
    comparison_type: str
    options: list[str]
    description: str


class ApprovalInfo(TypedDict):
    id: str
    name: str
    description: str
    fields: list[ApprovalFieldInfo]


class ProjectTypeListItem(TypedDict):
    type: str
    display_name: str
    description: str
    stage_count: int


class ProjectTypeInfo(TypedDict):
    type: str
    display_name: str
    description: str
    stages: list[StageInfo]
    reasons: list[ReasonInfo]
    approvals: list[ApprovalInfo]
    elevated_roles: list[str]
    allow_lists: dict[str, dict[str, list[str]]]
