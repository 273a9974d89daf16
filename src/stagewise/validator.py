# src/stagewise/validator.py
"""Transition validator.

Composes the terminal check, authorization, reason validity, custom-field
typing and the approval gate into a single verdict. Validation never mutates
anything: the same request against the same project yields the same result.

User-correctable problems come back as data in a ValidationResult. Broken
configuration raises ConfigurationError.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from stagewise.authorizer import Actor, legal_targets
from stagewise.errors import (
    ConfigurationError,
    ErrorKind,
    InvalidReason,
    ProjectClosed,
    StagewiseError,
    Unauthorized,
    ValidationError,
)
from stagewise.gates import evaluate_gate
from stagewise.pipeline import ChangeReason, PipelineRegistry, Stage, StageApproval, StageApprovalField
from stagewise.responses import FieldResponse, is_blank, parse_custom_response
from stagewise.validation import html_to_text

if TYPE_CHECKING:
    from stagewise.core import Project

Outcome = Literal["valid", "invalid", "pending_approval"]

_MAX_ATTACHMENTS = 50


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Attachment:
    """Metadata for an already-uploaded file. The engine never touches the bytes."""

    file_name: str
    file_size: int
    file_type: str
    object_path: str

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Attachment:
        try:
            file_name, file_type, object_path = raw["file_name"], raw.get("file_type", ""), raw["object_path"]
            file_size = raw.get("file_size", 0)
        except KeyError as exc:
            msg = f"attachment is missing {exc.args[0]!r}"
            raise ValueError(msg) from exc
        if not isinstance(file_name, str) or not file_name.strip():
            msg = "attachment file_name must be a non-empty string"
            raise ValueError(msg)
        if not isinstance(object_path, str) or not object_path.strip():
            msg = "attachment object_path must be a non-empty string"
            raise ValueError(msg)
        if isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0:
            msg = f"attachment file_size must be a non-negative integer, got {file_size!r}"
            raise ValueError(msg)
        return cls(file_name=file_name, file_size=file_size, file_type=str(file_type), object_path=object_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "object_path": self.object_path,
        }


@dataclass(frozen=True)
class TransitionRequest:
    """A requested move. ``reason`` may be the reason text or its id.

    ``approval_responses`` is None until the caller has collected approval
    answers; that is what distinguishes the first phase of a gated move from
    a failed second phase.
    """

    project_id: str
    actor: Actor
    target_stage: str
    reason: str
    field_responses: Mapping[str, Any] = field(default_factory=dict)
    approval_responses: Mapping[str, Any] | None = None
    notes: str = ""
    notes_html: str = ""
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class ValidationIssue:
    kind: ErrorKind
    code: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "code": self.code, "message": self.message, "field": self.field}


@dataclass(frozen=True)
class ValidatedTransition:
    """A transition that passed validation against a specific project version."""

    request: TransitionRequest
    project_id: str
    project_type: str
    project_version: int
    from_stage: str
    to_stage: Stage
    reason: ChangeReason
    field_responses: tuple[FieldResponse, ...]
    approval: StageApproval | None
    approval_responses: tuple[FieldResponse, ...]
    notes: str
    notes_html: str
    attachments: tuple[Attachment, ...]

    @property
    def actor(self) -> Actor:
        return self.request.actor


@dataclass(frozen=True)
class ValidationResult:
    outcome: Outcome
    errors: tuple[ValidationIssue, ...] = ()
    approval: StageApproval | None = None
    approval_fields: tuple[StageApprovalField, ...] = ()
    validated: ValidatedTransition | None = None
    cause: StagewiseError | None = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.outcome == "valid"

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.errors[0].kind if self.errors else None

    def to_exception(self) -> StagewiseError:
        """The exception a caller would raise for this (failed) result."""
        if not self.errors:
            msg = "ValidationResult has no errors to raise"
            raise ValueError(msg)
        if self.cause is not None:
            return self.cause
        return ValidationError([e.message for e in self.errors], [e.field for e in self.errors if e.field])

    def require_valid(self) -> ValidatedTransition:
        if self.validated is None:
            raise self.to_exception()
        return self.validated


def _invalid(*issues: ValidationIssue, cause: StagewiseError | None = None) -> ValidationResult:
    return ValidationResult(outcome="invalid", errors=tuple(issues), cause=cause)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def resolve_reason(reasons: list[ChangeReason], requested: str) -> ChangeReason | None:
    for reason in reasons:
        if reason.id == requested or reason.reason == requested:
            return reason
    return None


def effective_approval_id(project: Project, target: Stage, reason: ChangeReason) -> str | None:
    """Gate that applies to a move: project override, then stage, then reason."""
    override = project.approval_overrides.get(target.id) or project.approval_overrides.get(target.name)
    return override or target.stage_approval_id or reason.stage_approval_id


def validate(registry: PipelineRegistry, project: Project, request: TransitionRequest) -> ValidationResult:
    """Validate *request* against *project*'s current state.

    Checks run in order and stop at the first failing class: project closed,
    authorization, reason, custom fields (all violations, catalog order),
    approval gate.

    Raises:
        ConfigurationError: Unknown project type or target stage, unknown
            field keys, or an approval gate with no fields.
    """
    if project.completion_status:
        closed = ProjectClosed(project.id, project.completion_status)
        return _invalid(ValidationIssue("ProjectClosed", closed.code, str(closed)), cause=closed)

    project_type = registry.require_type(project.project_type)
    target = registry.require_stage(project_type.type, request.target_stage)

    legal = legal_targets(project_type, project.current_status, request.actor)
    if target.name not in {s.name for s in legal}:
        denied = Unauthorized(request.actor.id, project.current_status, target.name, [s.name for s in legal])
        return _invalid(ValidationIssue("Unauthorized", denied.code, str(denied), "target_stage"), cause=denied)

    reasons = registry.reasons_for(target.id)
    reason = resolve_reason(reasons, request.reason)
    if reason is None:
        bad = InvalidReason(request.reason, target.name, [r.reason for r in reasons])
        return _invalid(ValidationIssue("InvalidReason", bad.code, str(bad), "reason"), cause=bad)

    custom_fields = registry.fields_for(reason.id)
    unknown = sorted(set(request.field_responses) - {f.field_name for f in custom_fields})
    if unknown:
        msg = f"Change reason '{reason.reason}' has no field(s): {', '.join(unknown)}"
        raise ConfigurationError(msg)

    issues: list[ValidationIssue] = []
    responses: list[FieldResponse] = []
    for f in custom_fields:
        raw = request.field_responses.get(f.field_name)
        if is_blank(raw):
            if f.is_required:
                issues.append(ValidationIssue("ValidationError", "required", f"Field '{f.field_name}' is required", f.field_name))
            continue
        response, error = parse_custom_response(f, raw)
        if response is None:
            issues.append(ValidationIssue("ValidationError", "invalid_type", error or "invalid value", f.field_name))
        else:
            responses.append(response)
    if len(request.attachments) > _MAX_ATTACHMENTS:
        issues.append(
            ValidationIssue("ValidationError", "too_many_attachments", f"At most {_MAX_ATTACHMENTS} attachments per transition", "attachments")
        )
    if issues:
        return _invalid(*issues)

    approval: StageApproval | None = None
    approval_responses: tuple[FieldResponse, ...] = ()
    approval_id = effective_approval_id(project, target, reason)
    if approval_id is not None:
        approval = registry.get_approval(approval_id)
        if approval is None:
            msg = f"Approval gate '{approval_id}' for stage '{target.name}' does not exist"
            raise ConfigurationError(msg)
        gate_fields = registry.approval_fields_for(approval_id)
        if not gate_fields:
            msg = f"Approval gate '{approval.name}' ({approval.id}) has no fields configured"
            raise ConfigurationError(msg)

        if request.approval_responses is None:
            pending = [
                ValidationIssue("ValidationError", "approval_required", f"Approval field '{f.field_name}' is required", f.field_name)
                for f in gate_fields
                if f.is_required or f.has_expectation
            ]
            return ValidationResult(
                outcome="pending_approval",
                errors=tuple(pending),
                approval=approval,
                approval_fields=tuple(gate_fields),
            )

        result = evaluate_gate(approval, gate_fields, request.approval_responses)
        if not result.satisfied:
            return ValidationResult(
                outcome="invalid",
                errors=tuple(ValidationIssue("ValidationError", fl.code, fl.message, fl.field) for fl in result.failures),
                approval=approval,
                approval_fields=tuple(gate_fields),
            )
        approval_responses = result.responses

    notes = request.notes.strip() or html_to_text(request.notes_html)
    validated = ValidatedTransition(
        request=request,
        project_id=project.id,
        project_type=project_type.type,
        project_version=project.version,
        from_stage=project.current_status,
        to_stage=target,
        reason=reason,
        field_responses=tuple(responses),
        approval=approval,
        approval_responses=approval_responses,
        notes=notes,
        notes_html=request.notes_html,
        attachments=tuple(request.attachments),
    )
    return ValidationResult(outcome="valid", approval=approval, validated=validated)
