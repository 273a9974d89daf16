# src/stagewise/pipeline.py
"""Pipeline configuration -- loading, caching, and validation.

Provides PipelineRegistry for managing per-project-type stage graphs, change
reasons with their custom fields, approval gates, and the data-driven
transition policy. Everything in here is configuration data: the authorizer,
validator and committer read it but never mutate it.
"""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from stagewise.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Project type names end up in ids and file names.
_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
_MAX_LABEL_LENGTH = 128

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

CustomFieldType = Literal["number", "short_text", "long_text", "multi_select"]
ApprovalFieldType = Literal["boolean", "number", "long_text", "multi_select"]
ComparisonType = Literal["equal_to", "less_than", "greater_than"]

_CUSTOM_FIELD_TYPES: frozenset[str] = frozenset({"number", "short_text", "long_text", "multi_select"})
_APPROVAL_FIELD_TYPES: frozenset[str] = frozenset({"boolean", "number", "long_text", "multi_select"})
_COMPARISON_TYPES: frozenset[str] = frozenset({"equal_to", "less_than", "greater_than"})

DEFAULT_STAGE_COLOR = "#6b7280"
ORDINARY_TIER = "ordinary"
ELEVATED_TIER = "elevated"


def _check_label(value: Any, what: str) -> str:
    """Return *value* stripped, or raise ValueError if it is not a usable label."""
    if not isinstance(value, str) or not value.strip():
        msg = f"{what} must be a non-empty string"
        raise ValueError(msg)
    if len(value) > _MAX_LABEL_LENGTH:
        msg = f"{what} '{value[:32]}...' is longer than {_MAX_LABEL_LENGTH} characters"
        raise ValueError(msg)
    if any(unicodedata.category(ch).startswith("C") for ch in value):
        msg = f"{what} '{value}' must not contain control characters"
        raise ValueError(msg)
    return value.strip()


# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------
# Pipeline configuration is immutable once loaded. Project and TransitionRecord
# (core.py) are the mutable/stored entities.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Stage:
    """A named step in a project type's pipeline."""

    id: str
    name: str
    order: int
    color: str = DEFAULT_STAGE_COLOR
    assigned_role_id: str | None = None
    assigned_user_id: str | None = None
    max_instance_time_hours: float | None = None
    is_final: bool = False
    stage_approval_id: str | None = None

    def __post_init__(self) -> None:
        _check_label(self.name, "Stage name")
        if self.max_instance_time_hours is not None and self.max_instance_time_hours < 0:
            msg = f"Stage '{self.name}': max_instance_time_hours must be >= 0"
            raise ValueError(msg)

    @property
    def is_monitored(self) -> bool:
        return bool(self.max_instance_time_hours)


@dataclass(frozen=True)
class ChangeReason:
    """A justification for moving a project into ``stage_id``."""

    id: str
    stage_id: str
    reason: str
    order: int
    description: str = ""
    stage_approval_id: str | None = None


@dataclass(frozen=True)
class ReasonCustomField:
    """A typed data point collected alongside a change reason."""

    id: str
    reason_id: str
    field_name: str
    field_type: CustomFieldType
    is_required: bool = False
    options: tuple[str, ...] = ()
    order: int = 0
    placeholder: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        if self.field_type not in _CUSTOM_FIELD_TYPES:
            allowed = sorted(_CUSTOM_FIELD_TYPES)
            msg = f"Invalid field type '{self.field_type}' for field '{self.field_name}': must be one of {allowed}"
            raise ValueError(msg)
        if self.field_type == "multi_select" and not self.options:
            msg = f"Multi-select field '{self.field_name}' has no configured options"
            raise ValueError(msg)


@dataclass(frozen=True)
class StageApproval:
    """A named approval gate."""

    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class StageApprovalField:
    """One check inside an approval gate."""

    id: str
    stage_approval_id: str
    field_name: str
    field_type: ApprovalFieldType
    is_required: bool = True
    expected_value_boolean: bool | None = None
    expected_value_number: float | None = None
    comparison_type: ComparisonType | None = None
    options: tuple[str, ...] = ()
    order: int = 0
    description: str = ""

    def __post_init__(self) -> None:
        if self.field_type not in _APPROVAL_FIELD_TYPES:
            allowed = sorted(_APPROVAL_FIELD_TYPES)
            msg = f"Invalid approval field type '{self.field_type}' for field '{self.field_name}': must be one of {allowed}"
            raise ValueError(msg)
        if self.comparison_type is not None and self.comparison_type not in _COMPARISON_TYPES:
            allowed = sorted(_COMPARISON_TYPES)
            msg = f"Invalid comparison '{self.comparison_type}' for field '{self.field_name}': must be one of {allowed}"
            raise ValueError(msg)
        if self.expected_value_boolean is not None:
            if self.field_type != "boolean":
                msg = f"Approval field '{self.field_name}': expected_value_boolean only applies to boolean fields"
                raise ValueError(msg)
            if not isinstance(self.expected_value_boolean, bool):
                msg = f"Approval field '{self.field_name}': expected value must be true or false, got {self.expected_value_boolean!r}"
                raise ValueError(msg)
        if self.expected_value_number is not None:
            if self.field_type != "number":
                msg = f"Approval field '{self.field_name}': expected_value_number only applies to number fields"
                raise ValueError(msg)
            if isinstance(self.expected_value_number, bool) or not isinstance(self.expected_value_number, (int, float)):
                msg = f"Approval field '{self.field_name}': expected value must be a number, got {self.expected_value_number!r}"
                raise ValueError(msg)
            if self.comparison_type is None:
                msg = f"Approval field '{self.field_name}': expected_value_number requires a comparison_type"
                raise ValueError(msg)

    @property
    def has_expectation(self) -> bool:
        if self.field_type == "boolean":
            return self.expected_value_boolean is not None
        if self.field_type == "number":
            return self.expected_value_number is not None and self.comparison_type is not None
        return False


@dataclass(frozen=True)
class TransitionPolicy:
    """Data-driven transition table: ``(tier, current stage) -> targets``.

    Roles listed in ``elevated_roles`` may move to any other stage. Every
    other role uses the allow-list of the tier named after it, falling back
    to the ``ordinary`` tier.
    """

    elevated_roles: frozenset[str] = frozenset({"admin", "manager"})
    allow_lists: dict[str, dict[str, tuple[str, ...]]] = field(default_factory=dict)

    def tier_for(self, role: str) -> str:
        if role in self.elevated_roles:
            return ELEVATED_TIER
        if role in self.allow_lists:
            return role
        return ORDINARY_TIER

    def allowed_targets(self, tier: str, current_stage: str) -> tuple[str, ...]:
        return self.allow_lists.get(tier, {}).get(current_stage, ())


@dataclass(frozen=True)
class NotificationTemplate:
    """Subject/body text with ``{placeholder}`` substitutions."""

    subject: str
    body: str


@dataclass(frozen=True)
class ProjectType:
    """Complete pipeline definition for one project type."""

    type: str
    display_name: str
    description: str
    stages: tuple[Stage, ...]
    reasons: tuple[ChangeReason, ...]
    custom_fields: tuple[ReasonCustomField, ...]
    approvals: tuple[StageApproval, ...]
    approval_fields: tuple[StageApprovalField, ...]
    policy: TransitionPolicy
    notification: NotificationTemplate | None = None

    @property
    def initial_stage(self) -> Stage:
        return min(self.stages, key=lambda s: s.order)


# ---------------------------------------------------------------------------
# PipelineRegistry
# ---------------------------------------------------------------------------


class PipelineRegistry:
    """Loads, caches, and queries project-type pipelines.

    Pipelines are loaded once per instance. Registration builds O(1) indexes
    from stage id, reason id and approval id to their configuration so that
    the validator never scans a whole pipeline on the request path.
    """

    MAX_STAGES = 50
    MAX_REASONS = 200
    MAX_FIELDS = 50

    def __init__(self) -> None:
        self._types: dict[str, ProjectType] = {}
        self._stages: dict[str, tuple[str, Stage]] = {}
        self._reasons: dict[str, ChangeReason] = {}
        self._reasons_by_stage: dict[str, list[ChangeReason]] = {}
        self._fields_by_reason: dict[str, list[ReasonCustomField]] = {}
        self._approvals: dict[str, StageApproval] = {}
        self._approval_fields: dict[str, list[StageApprovalField]] = {}
        self._loaded = False

    # -- Parsing (from dict/JSON) -------------------------------------------

    @staticmethod
    def parse_project_type(raw: dict[str, Any]) -> ProjectType:
        """Parse a project-type pipeline from a JSON-compatible dict.

        Stage, reason and approval references inside the dict use local names
        (stage names, approval keys); they are turned into ids namespaced by
        the project type so that two types never collide.

        Raises:
            ValueError: If the shape is wrong or a size limit is exceeded.
            KeyError: If a required key is missing.
        """
        type_name = raw["type"]
        if not isinstance(type_name, str) or not _NAME_PATTERN.match(type_name):
            msg = f"Invalid project type name '{type_name}': must match ^[a-z][a-z0-9_]{{0,63}}$"
            raise ValueError(msg)

        raw_stages = raw.get("stages")
        if not isinstance(raw_stages, list) or not raw_stages:
            msg = f"Project type '{type_name}': 'stages' must be a non-empty list"
            raise ValueError(msg)
        raw_reasons = raw.get("reasons") or []
        raw_approvals = raw.get("approvals") or []
        for key, value in (("reasons", raw_reasons), ("approvals", raw_approvals)):
            if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
                msg = f"Project type '{type_name}': '{key}' must be a list of objects"
                raise ValueError(msg)

        if len(raw_stages) > PipelineRegistry.MAX_STAGES:
            msg = f"Project type '{type_name}' has {len(raw_stages)} stages (max {PipelineRegistry.MAX_STAGES})"
            raise ValueError(msg)
        if len(raw_reasons) > PipelineRegistry.MAX_REASONS:
            msg = f"Project type '{type_name}' has {len(raw_reasons)} reasons (max {PipelineRegistry.MAX_REASONS})"
            raise ValueError(msg)

        logger.debug("Parsing pipeline for project type: %s", type_name)

        def stage_id(name: str) -> str:
            return f"{type_name}/{name}"

        def approval_id(key: str) -> str:
            return f"{type_name}/approval/{key}"

        stages: list[Stage] = []
        for i, s in enumerate(raw_stages):
            if not isinstance(s, dict) or "name" not in s:
                msg = f"Project type '{type_name}': stage at index {i} must be a dict with 'name'"
                raise ValueError(msg)
            approval_key = s.get("approval")
            stages.append(
                Stage(
                    id=s.get("id") or stage_id(s["name"]),
                    name=s["name"],
                    order=int(s.get("order", i)),
                    color=s.get("color", DEFAULT_STAGE_COLOR),
                    assigned_role_id=s.get("assigned_role"),
                    assigned_user_id=s.get("assigned_user"),
                    max_instance_time_hours=s.get("max_instance_time_hours"),
                    is_final=bool(s.get("is_final", False)),
                    stage_approval_id=approval_id(approval_key) if approval_key else None,
                )
            )

        approvals: list[StageApproval] = []
        approval_fields: list[StageApprovalField] = []
        for a in raw_approvals:
            a_id = approval_id(a["id"])
            approvals.append(StageApproval(id=a_id, name=a.get("name", a["id"]), description=a.get("description", "")))
            raw_fields = a.get("fields") or []
            if len(raw_fields) > PipelineRegistry.MAX_FIELDS:
                msg = f"Approval '{a['id']}' has {len(raw_fields)} fields (max {PipelineRegistry.MAX_FIELDS})"
                raise ValueError(msg)
            for order, f in enumerate(raw_fields):
                expected = f.get("expected")
                field_type = f["type"]
                approval_fields.append(
                    StageApprovalField(
                        id=f"{a_id}/{f['name']}",
                        stage_approval_id=a_id,
                        field_name=f["name"],
                        field_type=field_type,
                        is_required=bool(f.get("required", True)),
                        expected_value_boolean=expected if field_type == "boolean" else None,
                        expected_value_number=expected if field_type == "number" else None,
                        comparison_type=f.get("comparison", "equal_to" if field_type == "number" and expected is not None else None),
                        options=tuple(f.get("options", [])),
                        order=order,
                        description=f.get("description", ""),
                    )
                )

        reasons: list[ChangeReason] = []
        custom_fields: list[ReasonCustomField] = []
        per_stage_order: dict[str, int] = {}
        for r in raw_reasons:
            target = stage_id(r["stage"])
            text = _check_label(r["reason"], "Change reason")
            order = per_stage_order.get(target, 0)
            per_stage_order[target] = order + 1
            r_id = r.get("id") or f"{target}/{text}"
            approval_key = r.get("approval")
            reasons.append(
                ChangeReason(
                    id=r_id,
                    stage_id=target,
                    reason=text,
                    order=order,
                    description=r.get("description", ""),
                    stage_approval_id=approval_id(approval_key) if approval_key else None,
                )
            )
            raw_fields = r.get("fields") or []
            if len(raw_fields) > PipelineRegistry.MAX_FIELDS:
                msg = f"Reason '{text}' has {len(raw_fields)} fields (max {PipelineRegistry.MAX_FIELDS})"
                raise ValueError(msg)
            for f_order, f in enumerate(raw_fields):
                custom_fields.append(
                    ReasonCustomField(
                        id=f"{r_id}/{f['name']}",
                        reason_id=r_id,
                        field_name=f["name"],
                        field_type=f["type"],
                        is_required=bool(f.get("required", False)),
                        options=tuple(f.get("options", [])),
                        order=f_order,
                        placeholder=f.get("placeholder", ""),
                        description=f.get("description", ""),
                    )
                )

        raw_policy = raw.get("transition_policy") or {}
        policy = TransitionPolicy(
            elevated_roles=frozenset(raw_policy.get("elevated_roles", ["admin", "manager"])),
            allow_lists={
                tier: {stage: tuple(targets) for stage, targets in table.items()}
                for tier, table in (raw_policy.get("allow_lists") or {}).items()
            },
        )

        raw_notification = raw.get("notification")
        notification = None
        if raw_notification:
            notification = NotificationTemplate(subject=raw_notification["subject"], body=raw_notification["body"])

        return ProjectType(
            type=type_name,
            display_name=raw.get("display_name", type_name),
            description=raw.get("description", ""),
            stages=tuple(sorted(stages, key=lambda s: s.order)),
            reasons=tuple(reasons),
            custom_fields=tuple(custom_fields),
            approvals=tuple(approvals),
            approval_fields=tuple(approval_fields),
            policy=policy,
            notification=notification,
        )

    @staticmethod
    def validate_project_type(pt: ProjectType) -> list[str]:
        """Validate a ProjectType for internal consistency.

        Returns:
            List of error messages. Empty list means valid.
        """
        errors: list[str] = []
        stage_names = [s.name for s in pt.stages]
        stage_ids = {s.id for s in pt.stages}
        approval_ids = {a.id for a in pt.approvals}

        seen: set[str] = set()
        for name in stage_names:
            if name in seen:
                errors.append(f"duplicate stage name '{name}'")
            seen.add(name)

        orders = sorted(s.order for s in pt.stages)
        if orders != list(range(len(pt.stages))):
            errors.append(f"stage orders must be unique and contiguous from 0, got {orders}")

        for s in pt.stages:
            if s.stage_approval_id is not None and s.stage_approval_id not in approval_ids:
                errors.append(f"stage '{s.name}' references unknown approval '{s.stage_approval_id}'")

        reason_keys: set[tuple[str, str]] = set()
        for r in pt.reasons:
            if r.stage_id not in stage_ids:
                errors.append(f"reason '{r.reason}' targets unknown stage '{r.stage_id}'")
            if (r.stage_id, r.reason) in reason_keys:
                errors.append(f"duplicate reason '{r.reason}' for stage '{r.stage_id}'")
            reason_keys.add((r.stage_id, r.reason))
            if r.stage_approval_id is not None and r.stage_approval_id not in approval_ids:
                errors.append(f"reason '{r.reason}' references unknown approval '{r.stage_approval_id}'")

        field_keys: set[tuple[str, str]] = set()
        for f in pt.custom_fields:
            if (f.reason_id, f.field_name) in field_keys:
                errors.append(f"duplicate field '{f.field_name}' on reason '{f.reason_id}'")
            field_keys.add((f.reason_id, f.field_name))

        names = set(stage_names)
        for tier, table in pt.policy.allow_lists.items():
            for from_stage, targets in table.items():
                if from_stage not in names:
                    errors.append(f"allow-list '{tier}' has unknown stage '{from_stage}'")
                for target in targets:
                    if target not in names:
                        errors.append(f"allow-list '{tier}' entry {from_stage}->{target} targets unknown stage")
                    elif target == from_stage:
                        errors.append(f"allow-list '{tier}' entry {from_stage}->{target} is a self-loop")

        return errors

    @staticmethod
    def check_project_type_quality(pt: ProjectType) -> list[str]:
        """Check a ProjectType for quality issues (non-blocking warnings)."""
        warnings: list[str] = []
        if not any(s.is_final for s in pt.stages):
            warnings.append("no stage is marked final; projects of this type can never be completed")

        gated = {s.stage_approval_id for s in pt.stages if s.stage_approval_id}
        gated |= {r.stage_approval_id for r in pt.reasons if r.stage_approval_id}
        populated = {f.stage_approval_id for f in pt.approval_fields}
        for approval_id in sorted(gated - populated):
            warnings.append(f"approval '{approval_id}' has no fields; transitions into its stage will be rejected")

        with_reasons = {r.stage_id for r in pt.reasons}
        for s in pt.stages:
            if s.order > 0 and s.id not in with_reasons:
                warnings.append(f"stage '{s.name}' has no change reasons; nothing can move into it")

        with_edges = {name for table in pt.policy.allow_lists.values() for name, targets in table.items() if targets}
        for s in pt.stages:
            if not s.is_final and s.name not in with_edges:
                warnings.append(f"stage '{s.name}' has no outgoing edges for any non-elevated role (dead end)")
        return warnings

    # -- Registration (internal) --------------------------------------------

    def _register_type(self, pt: ProjectType) -> None:
        """Register a project type and rebuild its indexes."""
        logger.debug("Registering project type: %s (%d stages, %d reasons)", pt.type, len(pt.stages), len(pt.reasons))
        previous = self._types.get(pt.type)
        if previous is not None:
            self._drop_indexes(previous)
        self._types[pt.type] = pt

        for stage in pt.stages:
            self._stages[stage.id] = (pt.type, stage)
            self._reasons_by_stage[stage.id] = []
        for reason in sorted(pt.reasons, key=lambda r: r.order):
            self._reasons[reason.id] = reason
            self._reasons_by_stage.setdefault(reason.stage_id, []).append(reason)
            self._fields_by_reason[reason.id] = []
        for f in sorted(pt.custom_fields, key=lambda f: f.order):
            self._fields_by_reason.setdefault(f.reason_id, []).append(f)
        for approval in pt.approvals:
            self._approvals[approval.id] = approval
            self._approval_fields[approval.id] = []
        for af in sorted(pt.approval_fields, key=lambda f: f.order):
            self._approval_fields.setdefault(af.stage_approval_id, []).append(af)

    def _drop_indexes(self, pt: ProjectType) -> None:
        for stage in pt.stages:
            self._stages.pop(stage.id, None)
            self._reasons_by_stage.pop(stage.id, None)
        for reason in pt.reasons:
            self._reasons.pop(reason.id, None)
            self._fields_by_reason.pop(reason.id, None)
        for approval in pt.approvals:
            self._approvals.pop(approval.id, None)
            self._approval_fields.pop(approval.id, None)

    def register(self, raw: dict[str, Any]) -> ProjectType:
        """Parse, validate and register a pipeline dict.

        Raises:
            ConfigurationError: If the pipeline fails validation.
        """
        try:
            pt = self.parse_project_type(raw)
        except (ValueError, KeyError, TypeError) as exc:
            msg = f"Invalid pipeline '{raw.get('type', '?')}': {exc}"
            raise ConfigurationError(msg) from exc
        errors = self.validate_project_type(pt)
        if errors:
            msg = f"Invalid pipeline '{pt.type}': {'; '.join(errors)}"
            raise ConfigurationError(msg)
        for qw in self.check_project_type_quality(pt):
            logger.warning("Quality: %s: %s", pt.type, qw)
        self._register_type(pt)
        return pt

    # -- Queries ------------------------------------------------------------

    def get_type(self, type_name: str) -> ProjectType | None:
        return self._types.get(type_name)

    def require_type(self, type_name: str) -> ProjectType:
        pt = self._types.get(type_name)
        if pt is None:
            valid = ", ".join(sorted(self._types))
            msg = f"Unknown project type '{type_name}'. Valid types: {valid}"
            raise ConfigurationError(msg)
        return pt

    def list_types(self) -> list[ProjectType]:
        return list(self._types.values())

    def stages_for(self, type_name: str) -> list[Stage]:
        """Stages of a project type in pipeline order."""
        return list(self.require_type(type_name).stages)

    def stage_by_name(self, type_name: str, name: str) -> Stage | None:
        for stage in self.require_type(type_name).stages:
            if stage.name == name:
                return stage
        return None

    def require_stage(self, type_name: str, name: str) -> Stage:
        stage = self.stage_by_name(type_name, name)
        if stage is None:
            msg = f"Stage '{name}' does not exist for project type '{type_name}'"
            raise ConfigurationError(msg)
        return stage

    def get_stage(self, stage_id: str) -> Stage | None:
        entry = self._stages.get(stage_id)
        return entry[1] if entry else None

    def stage_by_id(self, stage_id: str) -> Stage:
        stage = self.get_stage(stage_id)
        if stage is None:
            msg = f"Stage id '{stage_id}' does not resolve"
            raise ConfigurationError(msg)
        return stage

    def type_of_stage(self, stage_id: str) -> str | None:
        entry = self._stages.get(stage_id)
        return entry[0] if entry else None

    def get_approval(self, approval_id: str) -> StageApproval | None:
        return self._approvals.get(approval_id)

    def reasons_for(self, stage_id: str) -> list[ChangeReason]:
        """Change reasons permitted for moves into *stage_id*, in display order."""
        if stage_id not in self._stages:
            msg = f"Stage id '{stage_id}' does not resolve"
            raise ConfigurationError(msg)
        return list(self._reasons_by_stage.get(stage_id, []))

    def fields_for(self, reason_id: str) -> list[ReasonCustomField]:
        """Custom fields of a change reason, in display order."""
        if reason_id not in self._reasons:
            msg = f"Change reason id '{reason_id}' does not resolve"
            raise ConfigurationError(msg)
        return list(self._fields_by_reason.get(reason_id, []))

    def gate_for(self, stage_id: str) -> StageApproval | None:
        """The approval gate linked to a stage, or None if the stage is ungated."""
        stage = self.get_stage(stage_id)
        if stage is None:
            msg = f"Stage id '{stage_id}' does not resolve"
            raise ConfigurationError(msg)
        if stage.stage_approval_id is None:
            return None
        approval = self._approvals.get(stage.stage_approval_id)
        if approval is None:
            msg = f"Stage '{stage.name}' references approval '{stage.stage_approval_id}' which does not exist"
            raise ConfigurationError(msg)
        return approval

    def approval_fields_for(self, approval_id: str) -> list[StageApprovalField]:
        """Fields of an approval gate, in display order. May be empty."""
        if approval_id not in self._approvals:
            msg = f"Stage approval id '{approval_id}' does not resolve"
            raise ConfigurationError(msg)
        return list(self._approval_fields.get(approval_id, []))

    # -- Loading ------------------------------------------------------------

    def load(self, stagewise_dir: Path | None = None) -> None:
        """Load pipelines from both layers.

        Layer 1: Built-in pipelines from pipelines_data.BUILT_IN_PIPELINES
        Layer 2: Project-local pipelines from .stagewise/pipelines/*.json

        Idempotent: second call is a no-op.
        """
        if self._loaded:
            return

        from stagewise.pipelines_data import BUILT_IN_PIPELINES

        for type_name, raw in BUILT_IN_PIPELINES.items():
            try:
                self.register(raw)
            except ConfigurationError as exc:
                logger.warning("Skipping invalid built-in pipeline %s: %s", type_name, exc)

        if stagewise_dir is not None:
            pipelines_dir = stagewise_dir / "pipelines"
            if pipelines_dir.is_dir():
                for path in sorted(pipelines_dir.glob("*.json")):
                    try:
                        raw = json.loads(path.read_text())
                        if not isinstance(raw, dict):
                            msg = "pipeline file must contain a JSON object"
                            raise ValueError(msg)
                        pt = self.register(raw)
                        logger.info("Loaded project-local pipeline: %s from %s", pt.type, path.name)
                    except (ValueError, KeyError, TypeError, AttributeError) as exc:
                        logger.warning("Skipping invalid pipeline file %s: %s", path.name, exc)

        self._loaded = True
        logger.info("Pipeline loading complete: %d project types", len(self._types))
