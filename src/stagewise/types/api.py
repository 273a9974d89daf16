"""TypedDicts for MCP tool handler and CLI ``--json`` responses."""

from __future__ import annotations

from typing import Literal, NotRequired, TypedDict

from stagewise.types.core import ISOTimestamp, ProjectDict, TransitionRecordDict
from stagewise.types.pipeline import ApprovalFieldInfo, StageInfo


class ErrorResponse(TypedDict):
    """Standard error envelope returned by MCP error paths."""

    error: str
    code: str


class ValidationIssueDict(TypedDict):
    kind: str
    code: str
    message: str
    field: str | None


class ValidationResultDict(TypedDict):
    outcome: Literal["valid", "invalid", "pending_approval"]
    errors: list[ValidationIssueDict]
    approval_id: str | None
    approval_fields: list[ApprovalFieldInfo]


class ValidationFailure(ErrorResponse):
    """Error envelope carrying the validator's itemized issues."""

    outcome: str
    errors: list[ValidationIssueDict]
    approval_fields: NotRequired[list[ApprovalFieldInfo]]


class UnauthorizedError(ErrorResponse):
    """Error envelope for illegal targets, with the legal ones as a hint."""

    legal_targets: list[str]


class NotificationDict(TypedDict):
    subject: str
    body: str
    recipient_id: str | None


class CommitResultDict(TypedDict):
    project: ProjectDict
    transition_record: TransitionRecordDict
    notification_preview: NotificationDict | None


class LegalTransitionsResponse(TypedDict):
    project_id: str
    current_status: str
    actor: str
    role: str
    targets: list[StageInfo]


class ElapsedTimeDict(TypedDict):
    project_id: str
    stage: str
    entered_at: ISOTimestamp
    elapsed_business_hours: float
    max_instance_time_hours: float | None
    is_overdue: bool


class MissingRolesResponse(TypedDict):
    project_id: str
    missing_roles: list[str]
    complete: bool
