"""Tests for moving many projects of one type into a stage together."""

from __future__ import annotations

import pytest

from stagewise.authorizer import Actor
from stagewise.core import Project, StagewiseDB
from stagewise.errors import ConfigurationError, InvalidReason, ProjectClosed, ValidationError
from stagewise.validator import TransitionRequest
from tests._db_factory import FakeClock


def _standard(db: StagewiseDB) -> Project:
    return db.create_project("standard", actor="setup", client_manager_id="cm-1")


def _move(db: StagewiseDB, project: Project, actor: Actor, target: str, reason: str, **kwargs: object) -> None:
    db.transition_project(
        TransitionRequest(project_id=project.id, actor=actor, target_stage=target, reason=reason, **kwargs)  # type: ignore[arg-type]
    )


class TestEligibility:
    def test_plain_stage_is_eligible(self, db: StagewiseDB) -> None:
        eligibility = db.bulk_move_eligibility("standard", "in_progress")
        assert eligibility.eligible
        assert eligibility.stage_id == "standard/in_progress"
        assert eligibility.restrictions == []
        # "rework" asks for a defect count, so only "assigned" qualifies
        assert [r.reason for r in eligibility.valid_reasons] == ["assigned"]

    def test_gated_stage_is_not_eligible(self, db: StagewiseDB) -> None:
        eligibility = db.bulk_move_eligibility("standard", "done")
        assert not eligibility.eligible
        assert eligibility.restrictions == ["stage_approval"]
        assert eligibility.valid_reasons == []

    def test_reason_gate_blocks_the_stage(self, db: StagewiseDB) -> None:
        eligibility = db.bulk_move_eligibility("bookkeeping", "filed")
        assert not eligibility.eligible
        assert eligibility.restrictions == ["all_reasons_have_requirements"]

    def test_mixed_reasons(self, db: StagewiseDB) -> None:
        eligibility = db.bulk_move_eligibility("bookkeeping", "needs_input")
        assert eligibility.eligible
        assert [r.reason for r in eligibility.valid_reasons] == ["clarification needed"]

    def test_to_dict(self, db: StagewiseDB) -> None:
        data = db.bulk_move_eligibility("standard", "in_progress").to_dict()
        assert data["project_type"] == "standard"
        assert data["stage_name"] == "in_progress"
        assert data["eligible"] is True
        assert [r["reason"] for r in data["valid_reasons"]] == ["assigned"]

    def test_unknown_stage(self, db: StagewiseDB) -> None:
        with pytest.raises(ConfigurationError):
            db.bulk_move_eligibility("standard", "nowhere")

    def test_unknown_type(self, db: StagewiseDB) -> None:
        with pytest.raises(ConfigurationError):
            db.bulk_move_eligibility("payroll", "intake")


class TestBulkTransition:
    def test_moves_every_project(self, db: StagewiseDB, worker: Actor) -> None:
        first, second = _standard(db), _standard(db)
        result = db.bulk_transition([first.id, second.id], worker, "in_progress", "assigned", notes="morning batch")
        assert result.failures == []
        assert not result.partial
        assert [c.project.id for c in result.moved] == [first.id, second.id]
        for project_id in (first.id, second.id):
            assert db.get_project(project_id).current_status == "in_progress"
            (record,) = db.get_transition_history(project_id)
            assert record.reason == "assigned"
            assert record.actor_id == "worker-1"
            assert record.notes == "morning batch"

    def test_duplicate_ids_move_once(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        result = db.bulk_transition([project.id, project.id], worker, "in_progress", "assigned")
        assert len(result.moved) == 1
        assert db.get_project(project.id).version == project.version + 1

    def test_failed_project_does_not_undo_the_rest(self, db: StagewiseDB, worker: Actor) -> None:
        ahead, behind = _standard(db), _standard(db)
        _move(db, ahead, worker, "in_progress", "assigned")
        result = db.bulk_transition([ahead.id, behind.id], worker, "in_progress", "assigned")
        assert result.partial
        assert [c.project.id for c in result.moved] == [behind.id]
        (failure,) = result.failures
        assert failure.project_id == ahead.id
        assert failure.code == "unauthorized"
        assert len(db.get_transition_history(ahead.id)) == 1
        assert db.get_project(behind.id).current_status == "in_progress"
        assert not db.conn.in_transaction

    def test_result_to_dict(self, db: StagewiseDB, worker: Actor) -> None:
        ahead, behind = _standard(db), _standard(db)
        _move(db, ahead, worker, "in_progress", "assigned")
        data = db.bulk_transition([ahead.id, behind.id], worker, "in_progress", "assigned").to_dict()
        assert data["count"] == 1
        assert data["partial"] is True
        assert data["moved"][0]["project"]["id"] == behind.id
        assert data["failures"][0]["project_id"] == ahead.id

    def test_each_project_gets_its_own_clock_entry(self, db: StagewiseDB, admin: Actor, clock: FakeClock) -> None:
        first, second = _standard(db), _standard(db)
        clock.advance(hours=2)
        db.bulk_transition([first.id, second.id], admin, "in_progress", "assigned")
        for project_id in (first.id, second.id):
            project = db.get_project(project_id)
            assert [e.stage for e in project.chronology] == ["intake", "in_progress"]
            assert project.chronology.last is not None
            assert project.chronology.last.entered_at == clock.now

    def test_missing_projects_named(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        with pytest.raises(KeyError, match="test-nope"):
            db.bulk_transition([project.id, "test-nope"], worker, "in_progress", "assigned")
        assert db.get_project(project.id).current_status == "intake"

    def test_empty_batch(self, db: StagewiseDB, worker: Actor) -> None:
        with pytest.raises(ValidationError, match="At least one project"):
            db.bulk_transition([], worker, "in_progress", "assigned")

    def test_mixed_types(self, db: StagewiseDB, standard_project: Project, bookkeeping_project: Project, admin: Actor) -> None:
        with pytest.raises(ValidationError, match="same type"):
            db.bulk_transition([standard_project.id, bookkeeping_project.id], admin, "in_progress", "assigned")

    def test_closed_project_rejects_the_batch(self, db: StagewiseDB, admin: Actor) -> None:
        closed, open_ = _standard(db), _standard(db)
        _move(db, closed, admin, "done", "finished", approval_responses={"signed_off": True})
        db.complete_project(closed.id, actor=admin)
        with pytest.raises(ProjectClosed):
            db.bulk_transition([open_.id, closed.id], admin, "in_progress", "assigned")
        assert db.get_project(open_.id).current_status == "intake"

    def test_gated_stage_rejected(self, db: StagewiseDB, admin: Actor) -> None:
        project = _standard(db)
        with pytest.raises(ValidationError, match="moved individually") as exc_info:
            db.bulk_transition([project.id], admin, "done", "finished")
        assert exc_info.value.fields == ["approval_responses"]

    def test_reason_with_fields_rejected(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        with pytest.raises(ValidationError, match="rework") as exc_info:
            db.bulk_transition([project.id], worker, "in_progress", "rework")
        assert exc_info.value.fields == ["reason"]
        assert db.get_transition_history(project.id) == []

    def test_unknown_reason(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        with pytest.raises(InvalidReason):
            db.bulk_transition([project.id], worker, "in_progress", "vibes")

    def test_unknown_stage(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        with pytest.raises(ConfigurationError):
            db.bulk_transition([project.id], worker, "nowhere", "assigned")

    def test_reason_by_id(self, db: StagewiseDB, worker: Actor) -> None:
        project = _standard(db)
        result = db.bulk_transition([project.id], worker, "in_progress", "standard/in_progress/assigned")
        assert result.moved[0].transition_record.reason_id == "standard/in_progress/assigned"
