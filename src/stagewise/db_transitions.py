"""TransitionsMixin: pipeline queries, transition validation and commit.

Covers the six engine operations (legal targets, reasons, custom fields,
approval fields, validate, commit), stage clocks and SLA checks, and role
completeness. All methods access ``self.conn``, ``self.pipelines``, etc. via
Python's MRO when composed into ``StagewiseDB``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, cast

from stagewise.authorizer import Actor, legal_targets
from stagewise.clock import (
    elapsed_business_hours,
    is_overdue,
    parse_timestamp,
    stage_entered_at,
    wall_minutes_between,
)
from stagewise.db_base import DBMixinProtocol
from stagewise.errors import ConcurrentModification, InvalidReason, ProjectClosed, StagewiseError, ValidationError
from stagewise.notifications import NotificationPayload, build_notification
from stagewise.responses import FieldResponse, to_columns
from stagewise.validator import TransitionRequest, ValidatedTransition, ValidationResult, resolve_reason, validate

if TYPE_CHECKING:
    from stagewise.core import Project, TransitionRecord
    from stagewise.pipeline import ChangeReason, ProjectType, ReasonCustomField, Stage, StageApprovalField
    from stagewise.types.api import ValidationIssueDict, ValidationResultDict
    from stagewise.types.pipeline import (
        ApprovalFieldInfo,
        CustomFieldInfo,
        ProjectTypeInfo,
        ProjectTypeListItem,
        ReasonInfo,
        StageInfo,
    )

logger = logging.getLogger(__name__)

# Roles that fall back to the project's dedicated columns when no explicit
# role assignment exists.
_ROLE_COLUMNS = {"client_manager": "client_manager_id", "bookkeeper": "bookkeeper_id"}


def _user_for_role(project: Project, role: str) -> str | None:
    user = project.role_assignments.get(role)
    if user:
        return user
    column = _ROLE_COLUMNS.get(role)
    return getattr(project, column) if column else None


def resolve_assignee(stage: Stage, project: Project) -> str | None:
    """Who owns a project once it enters *stage*.

    Stage user, then the project's user for the stage role, then the client
    manager, then whoever holds it now.
    """
    if stage.assigned_user_id:
        return stage.assigned_user_id
    if stage.assigned_role_id:
        user = _user_for_role(project, stage.assigned_role_id)
        if user:
            return user
    return project.client_manager_id or project.current_assignee_id


# ---------------------------------------------------------------------------
# Dict builders for surfaces
# ---------------------------------------------------------------------------


def stage_info(stage: Stage) -> StageInfo:
    return {
        "id": stage.id,
        "name": stage.name,
        "order": stage.order,
        "color": stage.color,
        "assigned_role_id": stage.assigned_role_id,
        "assigned_user_id": stage.assigned_user_id,
        "max_instance_time_hours": stage.max_instance_time_hours,
        "is_final": stage.is_final,
        "stage_approval_id": stage.stage_approval_id,
    }


def reason_info(reason: ChangeReason) -> ReasonInfo:
    return {
        "id": reason.id,
        "stage_id": reason.stage_id,
        "reason": reason.reason,
        "order": reason.order,
        "description": reason.description,
        "stage_approval_id": reason.stage_approval_id,
    }


def custom_field_info(f: ReasonCustomField) -> CustomFieldInfo:
    info: CustomFieldInfo = {
        "id": f.id,
        "reason_id": f.reason_id,
        "field_name": f.field_name,
        "field_type": f.field_type,
        "is_required": f.is_required,
        "order": f.order,
    }
    if f.options:
        info["options"] = list(f.options)
    if f.placeholder:
        info["placeholder"] = f.placeholder
    if f.description:
        info["description"] = f.description
    return info


def approval_field_info(f: StageApprovalField) -> ApprovalFieldInfo:
    info: ApprovalFieldInfo = {
        "id": f.id,
        "stage_approval_id": f.stage_approval_id,
        "field_name": f.field_name,
        "field_type": f.field_type,
        "is_required": f.is_required,
        "order": f.order,
    }
    if f.expected_value_boolean is not None:
        info["expected_value_boolean"] = f.expected_value_boolean
    if f.expected_value_number is not None:
        info["expected_value_number"] = f.expected_value_number
    if f.comparison_type is not None:
        info["comparison_type"] = f.comparison_type
    if f.options:
        info["options"] = list(f.options)
    if f.description:
        info["description"] = f.description
    return info


def validation_result_info(result: ValidationResult) -> ValidationResultDict:
    return {
        "outcome": result.outcome,
        "errors": [cast("ValidationIssueDict", e.to_dict()) for e in result.errors],
        "approval_id": result.approval.id if result.approval else None,
        "approval_fields": [approval_field_info(f) for f in result.approval_fields],
    }


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class CommitResult:
    project: Project
    transition_record: TransitionRecord
    notification_preview: NotificationPayload | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project.to_dict(),
            "transition_record": self.transition_record.to_dict(),
            "notification_preview": self.notification_preview.to_dict() if self.notification_preview else None,
        }


@dataclass
class StageClock:
    """Time spent by a project in its current stage."""

    project_id: str
    stage: str
    entered_at: str
    elapsed_business_hours: float
    max_instance_time_hours: float | None
    is_overdue: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "stage": self.stage,
            "entered_at": self.entered_at,
            "elapsed_business_hours": self.elapsed_business_hours,
            "max_instance_time_hours": self.max_instance_time_hours,
            "is_overdue": self.is_overdue,
        }


@dataclass
class BulkMoveEligibility:
    """Whether many projects of one type may be moved into a stage together.

    A bulk move carries no per-project answers, so a gated target stage
    blocks it and only reasons with no approval gate and no custom fields
    qualify.
    """

    project_type: str
    stage_id: str
    stage_name: str
    eligible: bool
    restrictions: list[str]
    valid_reasons: list[ChangeReason]

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_type": self.project_type,
            "stage_id": self.stage_id,
            "stage_name": self.stage_name,
            "eligible": self.eligible,
            "restrictions": self.restrictions,
            "valid_reasons": [reason_info(r) for r in self.valid_reasons],
        }


@dataclass
class BulkFailure:
    project_id: str
    code: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"project_id": self.project_id, "code": self.code, "error": self.error}


@dataclass
class BulkTransitionResult:
    moved: list[CommitResult]
    failures: list[BulkFailure]

    @property
    def partial(self) -> bool:
        return bool(self.failures) and bool(self.moved)

    def to_dict(self) -> dict[str, Any]:
        return {
            "moved": [c.to_dict() for c in self.moved],
            "failures": [f.to_dict() for f in self.failures],
            "count": len(self.moved),
            "partial": self.partial,
        }


class TransitionsMixin(DBMixinProtocol):
    """Transition engine operations for StagewiseDB.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes
    (``self.conn``, ``self.pipelines``, ``self.get_project()``, etc.). Actual
    implementations provided by ``StagewiseDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:

        def get_transition(self, transition_id: str) -> TransitionRecord: ...

        def list_projects(self, *, active_only: bool = False, limit: int = 100) -> list[Project]: ...

    # -- Pipeline queries ----------------------------------------------------

    def list_project_types(self) -> list[ProjectTypeListItem]:
        return [
            {"type": pt.type, "display_name": pt.display_name, "description": pt.description, "stage_count": len(pt.stages)}
            for pt in self.pipelines.list_types()
        ]

    def get_project_type_info(self, project_type: str) -> ProjectTypeInfo | None:
        pt = self.pipelines.get_type(project_type)
        if pt is None:
            return None
        return {
            "type": pt.type,
            "display_name": pt.display_name,
            "description": pt.description,
            "stages": [stage_info(s) for s in pt.stages],
            "reasons": [reason_info(r) for r in pt.reasons],
            "approvals": [
                {
                    "id": a.id,
                    "name": a.name,
                    "description": a.description,
                    "fields": [approval_field_info(f) for f in self.pipelines.approval_fields_for(a.id)],
                }
                for a in pt.approvals
            ],
            "elevated_roles": sorted(pt.policy.elevated_roles),
            "allow_lists": {tier: {k: list(v) for k, v in table.items()} for tier, table in pt.policy.allow_lists.items()},
        }

    def _project_type_of(self, project: Project) -> ProjectType:
        return self.pipelines.require_type(project.project_type)

    # -- The six engine operations -------------------------------------------

    def list_legal_transitions(self, project_id: str, actor: Actor) -> list[Stage]:
        """Stages *actor* may move the project to in one hop."""
        project = self.get_project(project_id)
        return legal_targets(
            self._project_type_of(project),
            project.current_status,
            actor,
            completed=project.is_closed,
        )

    def list_reasons(self, stage_id: str) -> list[ChangeReason]:
        return self.pipelines.reasons_for(stage_id)

    def list_custom_fields(self, reason_id: str) -> list[ReasonCustomField]:
        return self.pipelines.fields_for(reason_id)

    def list_approval_fields(self, stage_approval_id: str) -> list[StageApprovalField]:
        return self.pipelines.approval_fields_for(stage_approval_id)

    def validate_transition(self, request: TransitionRequest) -> ValidationResult:
        """Validate a request against the project's current state. Never writes."""
        project = self.get_project(request.project_id)
        return validate(self.pipelines, project, request)

    def commit_transition(self, validated: ValidatedTransition) -> CommitResult:
        """Apply a validated transition atomically.

        Inside one ``BEGIN IMMEDIATE`` transaction: re-read the project, check
        it has not moved since validation, re-validate, then append the
        chronology entry, update the project row and append the audit record.

        Raises:
            ConcurrentModification: The project changed since validation.
            StagewiseError: Re-validation against fresh state failed.
            ConfigurationError: Pipeline configuration no longer resolves.
        """
        project_id = validated.project_id
        try:
            self.conn.execute("BEGIN IMMEDIATE")
            project = self.get_project(project_id)
            if project.version != validated.project_version or project.current_status != validated.from_stage:
                detail = (
                    f"expected version {validated.project_version} in '{validated.from_stage}', "
                    f"found version {project.version} in '{project.current_status}'"
                )
                raise ConcurrentModification(project_id, detail)
            fresh = validate(self.pipelines, project, validated.request).require_valid()
            record_id = self._apply_transition(project, fresh)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        project = self.get_project(project_id)
        record = self.get_transition(record_id)
        logger.info(
            "Moved %s from %s to %s",
            project_id,
            record.from_stage,
            record.to_stage,
            extra={"project_id": project_id, "actor": record.actor_id},
        )
        preview: NotificationPayload | None = None
        try:
            preview = build_notification(self._project_type_of(project), project, record)
        except Exception:
            logger.exception("Notification preview failed for %s", project_id, extra={"project_id": project_id})
        return CommitResult(project=project, transition_record=record, notification_preview=preview)

    def _apply_transition(self, project: Project, v: ValidatedTransition) -> str:
        """Write every effect of a transition. Caller owns the transaction."""
        now = self._now()
        now_dt = parse_timestamp(now)
        entered = stage_entered_at(project.chronology, project.current_status, project.created_at)
        minutes = wall_minutes_between(entered, now_dt)
        business_hours = round(self.calendar.hours_between(entered, now_dt), 4)
        entry = project.chronology.append(v.to_stage.name, now_dt)
        assignee = resolve_assignee(v.to_stage, project)

        self.conn.execute(
            "INSERT INTO chronology (project_id, stage, entered_at) VALUES (?, ?, ?)",
            (project.id, entry.stage, entry.entered_at.isoformat()),
        )
        cursor = self.conn.execute(
            "UPDATE projects SET current_status = ?, current_assignee_id = ?, updated_at = ?, version = version + 1 "
            "WHERE id = ? AND version = ? AND current_status = ? AND completion_status IS NULL",
            (v.to_stage.name, assignee, now, project.id, project.version, project.current_status),
        )
        if cursor.rowcount == 0:
            raise ConcurrentModification(project.id, "row changed during commit")

        record_id = self._generate_unique_id("transitions", "tr")
        self.conn.execute(
            "INSERT INTO transitions (id, project_id, from_stage, to_stage, reason_id, reason, notes, notes_html, "
            "approval_id, actor_id, actor_role, assignee_id, minutes_in_previous_stage, "
            "business_hours_in_previous_stage, occurred_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record_id,
                project.id,
                project.current_status,
                v.to_stage.name,
                v.reason.id,
                v.reason.reason,
                v.notes,
                v.notes_html,
                v.approval.id if v.approval else None,
                v.actor.id,
                v.actor.role,
                assignee,
                minutes,
                business_hours,
                entry.entered_at.isoformat(),
            ),
        )
        self._insert_responses("field_responses", record_id, v.field_responses)
        if v.approval is not None:
            self._insert_responses("approval_responses", record_id, v.approval_responses, approval_id=v.approval.id)
        for position, att in enumerate(v.attachments):
            self.conn.execute(
                "INSERT INTO attachments (transition_id, file_name, file_size, file_type, object_path, position) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (record_id, att.file_name, att.file_size, att.file_type, att.object_path, position),
            )
        self._record_event(
            project.id,
            "stage_changed",
            actor=v.actor.id,
            old_value=project.current_status,
            new_value=v.to_stage.name,
            comment=v.reason.reason,
        )
        if assignee != project.current_assignee_id:
            self._record_event(project.id, "assignee_changed", actor=v.actor.id, old_value=project.current_assignee_id, new_value=assignee)
        return record_id

    def _insert_responses(
        self,
        table: str,
        transition_id: str,
        responses: tuple[FieldResponse, ...],
        *,
        approval_id: str | None = None,
    ) -> None:
        """*table* is always a hardcoded literal at the call site."""
        for position, response in enumerate(responses):
            cols = to_columns(response)
            names = ["transition_id", "field_name", "field_type", "position", *cols]
            values: list[Any] = [transition_id, response.field_name, response.field_type, position, *cols.values()]
            if approval_id is not None:
                names.append("approval_id")
                values.append(approval_id)
            placeholders = ", ".join("?" * len(names))
            self.conn.execute(f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})", values)

    def transition_project(self, request: TransitionRequest, *, expected_version: int | None = None) -> CommitResult:
        """Validate and commit in one call.

        Raises the validator's error when the request is not valid, including
        a ValidationError listing the approval fields when a gate still needs
        answers.
        """
        validated = self.validate_transition(request).require_valid()
        if expected_version is not None and expected_version != validated.project_version:
            detail = f"expected version {expected_version}, found {validated.project_version}"
            raise ConcurrentModification(request.project_id, detail)
        return self.commit_transition(validated)

    # -- Bulk moves ----------------------------------------------------------

    def bulk_move_eligibility(self, project_type: str, target_stage: str) -> BulkMoveEligibility:
        """Can projects of *project_type* be moved into *target_stage* in bulk?

        Raises:
            ConfigurationError: Unknown project type or stage.
        """
        stage = self.pipelines.require_stage(project_type, target_stage)
        restrictions: list[str] = []
        if stage.stage_approval_id:
            restrictions.append("stage_approval")
        reasons = self.pipelines.reasons_for(stage.id)
        usable = [r for r in reasons if r.stage_approval_id is None and not self.pipelines.fields_for(r.id)]
        if reasons and not usable:
            restrictions.append("all_reasons_have_requirements")
        eligible = "stage_approval" not in restrictions and bool(usable)
        return BulkMoveEligibility(
            project_type=project_type,
            stage_id=stage.id,
            stage_name=stage.name,
            eligible=eligible,
            restrictions=restrictions,
            valid_reasons=usable if eligible else [],
        )

    def bulk_transition(
        self,
        project_ids: list[str],
        actor: Actor,
        target_stage: str,
        reason: str,
        *,
        notes: str = "",
        notes_html: str = "",
    ) -> BulkTransitionResult:
        """Move several projects of one type into *target_stage* with one reason.

        The batch as a whole is checked first: every project must exist, be
        open and share a type, and the stage/reason pair must be eligible
        for bulk moves. Each project is then validated and committed in its
        own transaction; a project that fails is reported in ``failures``
        and does not undo the others.

        Raises:
            KeyError: One or more projects do not exist.
            ProjectClosed: A project in the batch is already completed.
            ValidationError: Empty batch, mixed project types, or a target
                or reason that needs per-project answers.
            InvalidReason: *reason* is not a reason for *target_stage*.
            ConfigurationError: Unknown target stage.
        """
        ids = list(dict.fromkeys(project_ids))
        if not ids:
            raise ValidationError(["At least one project is required"])
        projects: list[Project] = []
        missing: list[str] = []
        for project_id in ids:
            try:
                projects.append(self.get_project(project_id))
            except KeyError:
                missing.append(project_id)
        if missing:
            raise KeyError(", ".join(missing))
        project_type = projects[0].project_type
        if any(p.project_type != project_type for p in projects):
            raise ValidationError(["All projects must be of the same type for a bulk move"])
        for project in projects:
            if project.completion_status is not None:
                raise ProjectClosed(project.id, project.completion_status)

        eligibility = self.bulk_move_eligibility(project_type, target_stage)
        if "stage_approval" in eligibility.restrictions:
            msg = f"Stage '{target_stage}' requires approval fields. Projects must be moved individually."
            raise ValidationError([msg], ["approval_responses"])
        matched = resolve_reason(self.pipelines.reasons_for(eligibility.stage_id), reason)
        if matched is None:
            valid = [r.reason for r in self.pipelines.reasons_for(eligibility.stage_id)]
            raise InvalidReason(reason, target_stage, valid)
        if matched not in eligibility.valid_reasons:
            msg = f"Change reason '{matched.reason}' requires approval or custom fields. Projects must be moved individually."
            raise ValidationError([msg], ["reason"])

        result = BulkTransitionResult(moved=[], failures=[])
        for project in projects:
            request = TransitionRequest(
                project_id=project.id,
                actor=actor,
                target_stage=target_stage,
                reason=matched.id,
                notes=notes,
                notes_html=notes_html,
            )
            try:
                result.moved.append(self.transition_project(request))
            except StagewiseError as exc:
                logger.warning("Bulk move skipped %s: %s", project.id, exc, extra={"project_id": project.id, "actor": actor.id})
                result.failures.append(BulkFailure(project.id, exc.code, str(exc)))
        logger.info(
            "Bulk moved %d of %d projects to %s",
            len(result.moved),
            len(projects),
            target_stage,
            extra={"actor": actor.id},
        )
        return result

    # -- Clock & SLA ---------------------------------------------------------

    def get_stage_clock(
        self,
        project_id: str,
        *,
        now: datetime | None = None,
        is_business_hour: Callable[[datetime], bool] | None = None,
    ) -> StageClock:
        project = self.get_project(project_id)
        return self._stage_clock(project, now=now, is_business_hour=is_business_hour)

    def _stage_clock(
        self,
        project: Project,
        *,
        now: datetime | None = None,
        is_business_hour: Callable[[datetime], bool] | None = None,
    ) -> StageClock:
        stage = self.pipelines.require_stage(project.project_type, project.current_status)
        moment = now or parse_timestamp(self._now())
        elapsed = elapsed_business_hours(
            project.chronology,
            project.current_status,
            project.created_at,
            now=moment,
            calendar=self.calendar,
            is_business_hour=is_business_hour,
        )
        entered = stage_entered_at(project.chronology, project.current_status, project.created_at)
        return StageClock(
            project_id=project.id,
            stage=stage.name,
            entered_at=entered.isoformat(),
            elapsed_business_hours=round(elapsed, 4),
            max_instance_time_hours=stage.max_instance_time_hours,
            is_overdue=not project.is_closed and is_overdue(stage, elapsed),
        )

    def list_overdue_projects(
        self,
        *,
        now: datetime | None = None,
        is_business_hour: Callable[[datetime], bool] | None = None,
    ) -> list[StageClock]:
        """Active projects whose current-stage business time has reached its limit."""
        overdue: list[StageClock] = []
        for project in self.list_projects(active_only=True, limit=-1):
            pt = self.pipelines.get_type(project.project_type)
            if pt is None:
                logger.warning("Skipping %s: unknown project type %s", project.id, project.project_type)
                continue
            stage = self.pipelines.stage_by_name(pt.type, project.current_status)
            if stage is None or not stage.is_monitored:
                continue
            clock = self._stage_clock(project, now=now, is_business_hour=is_business_hour)
            if clock.is_overdue:
                overdue.append(clock)
        overdue.sort(key=lambda c: c.elapsed_business_hours - (c.max_instance_time_hours or 0), reverse=True)
        return overdue

    # -- Role completeness ---------------------------------------------------

    def missing_role_assignments(self, project_id: str) -> list[str]:
        """Stage roles of the project's type that nobody fills on this project.

        A type whose stages name no roles has nothing to fill, so the result
        is empty and the project counts as fully assigned.
        """
        project = self.get_project(project_id)
        pt = self._project_type_of(project)
        required = {s.assigned_role_id for s in pt.stages if s.assigned_role_id}
        return sorted(role for role in required if not _user_for_role(project, role))

