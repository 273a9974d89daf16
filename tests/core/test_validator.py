"""Tests for transition validation through StagewiseDB.validate_transition."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from stagewise.authorizer import Actor
from stagewise.core import Project, StagewiseDB
from stagewise.errors import ConfigurationError, InvalidReason, ProjectClosed, Unauthorized, ValidationError
from stagewise.validator import Attachment, TransitionRequest
from tests._db_factory import make_db

_EMPTY_GATE_PIPELINE: dict[str, Any] = {
    "type": "hollow",
    "stages": [
        {"name": "open", "order": 0},
        {"name": "closed", "order": 1, "is_final": True, "approval": "empty"},
    ],
    "approvals": [{"id": "empty", "name": "Empty", "fields": []}],
    "reasons": [{"stage": "closed", "reason": "resolved"}],
}


def _request(project: Project, actor: Actor, target: str, reason: str, **kwargs: Any) -> TransitionRequest:
    return TransitionRequest(project_id=project.id, actor=actor, target_stage=target, reason=reason, **kwargs)


class TestValidMoves:
    def test_simple_move(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "assigned"))
        assert result.outcome == "valid"
        assert result.ok
        assert result.errors == ()
        v = result.require_valid()
        assert v.from_stage == "intake"
        assert v.to_stage.name == "in_progress"
        assert v.project_version == standard_project.version
        assert v.approval is None

    def test_reason_by_id(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "standard/in_progress/assigned"))
        assert result.ok
        assert result.require_valid().reason.reason == "assigned"

    def test_typed_field_responses(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(
            _request(standard_project, worker, "in_progress", "rework", field_responses={"defect_count": "3", "summary": "two typos"})
        )
        v = result.require_valid()
        assert [(r.field_name, r.value) for r in v.field_responses] == [("defect_count", 3.0), ("summary", "two typos")]

    def test_optional_field_omitted(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "rework", field_responses={"defect_count": 0}))
        assert result.ok

    def test_plain_notes_derived_from_html(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(
            _request(standard_project, worker, "in_progress", "assigned", notes_html="<p>Hello <b>there</b></p>")
        )
        v = result.require_valid()
        assert v.notes == "Hello there"
        assert v.notes_html == "<p>Hello <b>there</b></p>"

    def test_validation_does_not_write(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        request = _request(standard_project, worker, "in_progress", "assigned")
        first = db.validate_transition(request)
        second = db.validate_transition(request)
        assert first == second
        assert first.outcome == "valid"
        project = db.get_project(standard_project.id)
        assert project.version == standard_project.version
        assert len(project.chronology) == 1
        assert db.get_transition_history(project.id) == []


class TestAuthorization:
    def test_skip_denied_for_ordinary(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "done", "finished"))
        assert result.outcome == "invalid"
        assert result.error_kind == "Unauthorized"
        assert result.errors[0].field == "target_stage"
        assert isinstance(result.cause, Unauthorized)
        assert result.cause.allowed == ["in_progress"]

    def test_skip_allowed_for_elevated(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        result = db.validate_transition(_request(standard_project, admin, "done", "finished"))
        assert result.outcome == "pending_approval"

    def test_authorization_checked_before_reason(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "done", "no such reason"))
        assert result.error_kind == "Unauthorized"

    def test_to_exception_is_the_cause(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "done", "finished"))
        with pytest.raises(Unauthorized):
            result.require_valid()
        assert result.to_exception() is result.cause

    def test_unknown_target_stage(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        with pytest.raises(ConfigurationError, match="does not exist"):
            db.validate_transition(_request(standard_project, worker, "archived", "assigned"))


class TestReasons:
    def test_reason_of_another_stage(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "finished"))
        assert result.error_kind == "InvalidReason"
        assert result.errors[0].field == "reason"
        assert isinstance(result.cause, InvalidReason)
        assert result.cause.valid_reasons == ["assigned", "rework"]


class TestCustomFields:
    def test_required_missing(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "rework"))
        assert result.outcome == "invalid"
        assert [(e.field, e.code) for e in result.errors] == [("defect_count", "required")]

    def test_wrong_type(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        result = db.validate_transition(
            _request(standard_project, worker, "in_progress", "rework", field_responses={"defect_count": "lots"})
        )
        assert [(e.field, e.code) for e in result.errors] == [("defect_count", "invalid_type")]

    def test_all_violations_in_catalog_order(self, db: StagewiseDB, bookkeeping_project: Project, admin: Actor) -> None:
        result = db.validate_transition(
            _request(
                bookkeeping_project,
                admin,
                "needs_input",
                "missing documents",
                field_responses={"request_reference": "x" * 300},
            )
        )
        assert [(e.field, e.code) for e in result.errors] == [
            ("documents", "required"),
            ("request_reference", "invalid_type"),
        ]
        exc = result.to_exception()
        assert isinstance(exc, ValidationError)
        assert exc.fields == ["documents", "request_reference"]

    def test_unknown_field_key_is_configuration_error(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        with pytest.raises(ConfigurationError, match="colour"):
            db.validate_transition(_request(standard_project, worker, "in_progress", "assigned", field_responses={"colour": "red"}))

    def test_too_many_attachments(self, db: StagewiseDB, standard_project: Project, worker: Actor) -> None:
        attachments = tuple(Attachment(f"f{i}.pdf", 10, "application/pdf", f"bucket/f{i}") for i in range(51))
        result = db.validate_transition(_request(standard_project, worker, "in_progress", "assigned", attachments=attachments))
        assert [(e.field, e.code) for e in result.errors] == [("attachments", "too_many_attachments")]


class TestApprovalGates:
    def test_first_phase_is_pending(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        result = db.validate_transition(_request(standard_project, admin, "done", "finished"))
        assert result.outcome == "pending_approval"
        assert result.approval is not None
        assert result.approval.id == "standard/approval/sign_off"
        assert [f.field_name for f in result.approval_fields] == ["signed_off"]
        assert [(e.field, e.code) for e in result.errors] == [("signed_off", "approval_required")]
        assert result.validated is None
        with pytest.raises(ValidationError):
            result.require_valid()

    def test_expectation_failed(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        result = db.validate_transition(
            _request(standard_project, admin, "done", "finished", approval_responses={"signed_off": False})
        )
        assert result.outcome == "invalid"
        assert [(e.field, e.code) for e in result.errors] == [("signed_off", "expectation_failed")]

    def test_satisfied(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        result = db.validate_transition(_request(standard_project, admin, "done", "finished", approval_responses={"signed_off": True}))
        v = result.require_valid()
        assert v.approval is not None
        assert [(r.field_name, r.value) for r in v.approval_responses] == [("signed_off", True)]

    def test_empty_submission_fails_rather_than_pends(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        result = db.validate_transition(_request(standard_project, admin, "done", "finished", approval_responses={}))
        assert result.outcome == "invalid"
        assert [e.code for e in result.errors] == ["missing"]

    def test_reason_level_gate(self, db: StagewiseDB, bookkeeping_project: Project, admin: Actor) -> None:
        result = db.validate_transition(_request(bookkeeping_project, admin, "filed", "filed"))
        assert result.outcome == "pending_approval"
        assert result.approval is not None
        assert result.approval.id == "bookkeeping/approval/filing_confirmation"

    def test_project_override_wins(self, db: StagewiseDB, admin: Actor) -> None:
        project = db.create_project(
            "standard",
            actor="setup",
            approval_overrides={"done": "bookkeeping/approval/filing_confirmation"},
        )
        result = db.validate_transition(_request(project, admin, "done", "finished"))
        assert result.approval is not None
        assert result.approval.id == "bookkeeping/approval/filing_confirmation"
        assert [f.field_name for f in result.approval_fields] == ["filed_with_authority", "filing_channels"]

    def test_unknown_approval_key(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        with pytest.raises(ConfigurationError, match="stamp"):
            db.validate_transition(
                _request(standard_project, admin, "done", "finished", approval_responses={"signed_off": True, "stamp": "x"})
            )

    @pytest.mark.parametrize("answers", [None, {}, {"anything": True}])
    def test_gate_without_fields_never_passes(self, tmp_path: Path, admin: Actor, answers: dict[str, Any] | None) -> None:
        db = make_db(tmp_path, pipelines=[_EMPTY_GATE_PIPELINE])
        try:
            project = db.create_project("hollow", actor="setup")
            with pytest.raises(ConfigurationError, match="has no fields"):
                db.validate_transition(_request(project, admin, "closed", "resolved", approval_responses=answers))
            assert db.get_project(project.id).current_status == "open"
        finally:
            db.close()

    def test_repeated_invalid_validation_is_identical(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        request = _request(standard_project, admin, "done", "finished", approval_responses={"signed_off": False})
        assert db.validate_transition(request) == db.validate_transition(request)


class TestClosedProjects:
    def test_closed_project_rejects_everything(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        db.transition_project(_request(standard_project, admin, "done", "finished", approval_responses={"signed_off": True}))
        db.complete_project(standard_project.id, actor=admin)
        result = db.validate_transition(_request(standard_project, admin, "intake", "reopened", field_responses={"why": "oops"}))
        assert result.outcome == "invalid"
        assert result.error_kind == "ProjectClosed"
        assert isinstance(result.cause, ProjectClosed)
