# src/stagewise/gates.py
"""Approval gate evaluation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from stagewise.errors import ConfigurationError
from stagewise.pipeline import StageApproval, StageApprovalField
from stagewise.responses import FieldResponse, is_blank, parse_approval_response

_COMPARISON_WORDS = {"equal_to": "equal to", "less_than": "less than", "greater_than": "greater than"}


def evaluate_response(field: StageApprovalField, value: Any) -> bool:
    """Score one typed approval value against the field's expectation.

    Fields without an expectation are informational and always pass.
    """
    if field.field_type == "boolean":
        if field.expected_value_boolean is None:
            return True
        return isinstance(value, bool) and value is field.expected_value_boolean
    if field.field_type == "number":
        expected = field.expected_value_number
        if expected is None or field.comparison_type is None:
            return True
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if field.comparison_type == "equal_to":
            return value == expected
        if field.comparison_type == "less_than":
            return value < expected
        return value > expected
    return True


def describe_expectation(field: StageApprovalField) -> str | None:
    if field.field_type == "boolean" and field.expected_value_boolean is not None:
        return f"must be {str(field.expected_value_boolean).lower()}"
    if field.field_type == "number" and field.expected_value_number is not None and field.comparison_type is not None:
        return f"must be {_COMPARISON_WORDS[field.comparison_type]} {field.expected_value_number:g}"
    return None


@dataclass(frozen=True)
class GateFailure:
    field: str
    code: str
    message: str


@dataclass(frozen=True)
class GateResult:
    approval: StageApproval
    responses: tuple[FieldResponse, ...]
    failures: tuple[GateFailure, ...]

    @property
    def satisfied(self) -> bool:
        return not self.failures


def evaluate_gate(
    approval: StageApproval,
    fields: Sequence[StageApprovalField],
    submitted: Mapping[str, Any],
) -> GateResult:
    """Evaluate a full approval submission against a gate.

    Failures are reported in field order. A gate with no fields cannot be
    satisfied and is reported as a configuration problem.

    Raises:
        ConfigurationError: If the gate has no fields or a submitted key
            names no field of this gate.
    """
    if not fields:
        msg = f"Approval gate '{approval.name}' ({approval.id}) has no fields configured"
        raise ConfigurationError(msg)

    known = {f.field_name for f in fields}
    unknown = sorted(set(submitted) - known)
    if unknown:
        msg = f"Approval gate '{approval.name}' has no field(s): {', '.join(unknown)}"
        raise ConfigurationError(msg)

    responses: list[FieldResponse] = []
    failures: list[GateFailure] = []
    for field in fields:
        raw = submitted.get(field.field_name)
        if is_blank(raw):
            if field.is_required or field.has_expectation:
                failures.append(GateFailure(field.field_name, "missing", f"Approval field '{field.field_name}' is required"))
            continue
        response, error = parse_approval_response(field, raw)
        if response is None:
            failures.append(GateFailure(field.field_name, "invalid_type", error or "invalid value"))
            continue
        responses.append(response)
        if not evaluate_response(field, response.value):
            expectation = describe_expectation(field) or "failed its check"
            failures.append(
                GateFailure(
                    field.field_name,
                    "expectation_failed",
                    f"Approval field '{field.field_name}' {expectation} (got {raw!r})",
                )
            )
    return GateResult(approval=approval, responses=tuple(responses), failures=tuple(failures))
