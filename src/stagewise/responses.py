# src/stagewise/responses.py
"""Typed field responses.

A response is one variant of a tagged union keyed by field type, each with
exactly one payload. Parsers turn raw submitted values (JSON scalars, lists,
CLI strings) into a variant or an error message; they never raise for bad
user input.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Literal

from stagewise.pipeline import ReasonCustomField, StageApprovalField

SHORT_TEXT_MAX_LENGTH = 255


@dataclass(frozen=True)
class NumberResponse:
    field_name: str
    value: float
    field_type: Literal["number"] = "number"


@dataclass(frozen=True)
class ShortTextResponse:
    field_name: str
    value: str
    field_type: Literal["short_text"] = "short_text"


@dataclass(frozen=True)
class LongTextResponse:
    field_name: str
    value: str
    field_type: Literal["long_text"] = "long_text"


@dataclass(frozen=True)
class MultiSelectResponse:
    field_name: str
    value: tuple[str, ...]
    field_type: Literal["multi_select"] = "multi_select"


@dataclass(frozen=True)
class BooleanResponse:
    field_name: str
    value: bool
    field_type: Literal["boolean"] = "boolean"


FieldResponse = NumberResponse | ShortTextResponse | LongTextResponse | MultiSelectResponse | BooleanResponse

# Parse result: exactly one of (response, error) is set.
ParseResult = tuple[FieldResponse | None, str | None]


def is_blank(raw: Any) -> bool:
    """True for values that count as "no response" for a required field."""
    if raw is None:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    if isinstance(raw, (list, tuple, set, frozenset)):
        return len(raw) == 0
    return False


def response_to_dict(response: FieldResponse) -> dict[str, Any]:
    value: Any = list(response.value) if isinstance(response, MultiSelectResponse) else response.value
    return {"field_name": response.field_name, "field_type": response.field_type, "value": value}


# ---------------------------------------------------------------------------
# Per-type parsers
# ---------------------------------------------------------------------------


def _parse_number(name: str, raw: Any) -> ParseResult:
    if isinstance(raw, bool):
        return None, f"Field '{name}' must be a number, got a boolean"
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None, f"Field '{name}' must be a number, got '{raw}'"
    else:
        return None, f"Field '{name}' must be a number, got {type(raw).__name__}"
    if not math.isfinite(value):
        return None, f"Field '{name}' must be a finite number"
    return NumberResponse(name, value), None


def _parse_text(name: str, raw: Any, *, short: bool) -> ParseResult:
    if not isinstance(raw, str):
        return None, f"Field '{name}' must be text, got {type(raw).__name__}"
    if short:
        if len(raw) > SHORT_TEXT_MAX_LENGTH:
            return None, f"Field '{name}' must be at most {SHORT_TEXT_MAX_LENGTH} characters"
        return ShortTextResponse(name, raw), None
    return LongTextResponse(name, raw), None


def _parse_multi_select(name: str, raw: Any, options: tuple[str, ...]) -> ParseResult:
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)):
        return None, f"Field '{name}' must be a list of options"
    if not raw:
        return None, f"Field '{name}' requires at least one selection"
    selected: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            return None, f"Field '{name}' options must be strings"
        if item not in options:
            return None, f"Field '{name}': '{item}' is not one of {list(options)}"
        if item not in selected:
            selected.append(item)
    return MultiSelectResponse(name, tuple(selected)), None


def _parse_boolean(name: str, raw: Any) -> ParseResult:
    if not isinstance(raw, bool):
        return None, f"Field '{name}' must be true or false"
    return BooleanResponse(name, raw), None


def parse_custom_response(field: ReasonCustomField, raw: Any) -> ParseResult:
    """Parse a non-blank raw value for a change-reason custom field."""
    name = field.field_name
    if field.field_type == "number":
        return _parse_number(name, raw)
    if field.field_type == "short_text":
        return _parse_text(name, raw, short=True)
    if field.field_type == "long_text":
        return _parse_text(name, raw, short=False)
    return _parse_multi_select(name, raw, field.options)


def parse_approval_response(field: StageApprovalField, raw: Any) -> ParseResult:
    """Parse a non-blank raw value for an approval gate field."""
    name = field.field_name
    if field.field_type == "boolean":
        return _parse_boolean(name, raw)
    if field.field_type == "number":
        return _parse_number(name, raw)
    if field.field_type == "long_text":
        return _parse_text(name, raw, short=False)
    return _parse_multi_select(name, raw, field.options)


# ---------------------------------------------------------------------------
# Storage mapping (one value column per variant)
# ---------------------------------------------------------------------------


def to_columns(response: FieldResponse) -> dict[str, Any]:
    """Map a response to the store's value columns; exactly one is non-NULL."""
    cols: dict[str, Any] = {"value_number": None, "value_text": None, "value_multi": None, "value_boolean": None}
    if isinstance(response, NumberResponse):
        cols["value_number"] = response.value
    elif isinstance(response, (ShortTextResponse, LongTextResponse)):
        cols["value_text"] = response.value
    elif isinstance(response, MultiSelectResponse):
        cols["value_multi"] = json.dumps(list(response.value))
    else:
        cols["value_boolean"] = int(response.value)
    return cols


def from_row(row: Any) -> FieldResponse:
    """Rebuild a response from a stored row with field_name/field_type/value_* keys."""
    name, field_type = row["field_name"], row["field_type"]
    if field_type == "number":
        return NumberResponse(name, row["value_number"])
    if field_type == "short_text":
        return ShortTextResponse(name, row["value_text"])
    if field_type == "long_text":
        return LongTextResponse(name, row["value_text"])
    if field_type == "multi_select":
        return MultiSelectResponse(name, tuple(json.loads(row["value_multi"])))
    if field_type == "boolean":
        return BooleanResponse(name, bool(row["value_boolean"]))
    msg = f"Unknown stored field type '{field_type}' for field '{name}'"
    raise ValueError(msg)
