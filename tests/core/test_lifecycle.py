"""Tests for project creation, listing, roles, completion and stage clocks."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from stagewise.authorizer import Actor
from stagewise.core import Project, StagewiseDB
from stagewise.errors import ConfigurationError, ProjectClosed, Unauthorized, ValidationError
from stagewise.validator import TransitionRequest
from tests._db_factory import MONDAY_9AM, FakeClock


def _always(ts: datetime) -> bool:
    return True


def _finish(db: StagewiseDB, project: Project, actor: Actor) -> Project:
    request = TransitionRequest(
        project_id=project.id,
        actor=actor,
        target_stage="done",
        reason="finished",
        approval_responses={"signed_off": True},
    )
    return db.transition_project(request).project


class TestCreateProject:
    def test_starts_in_initial_stage(self, db: StagewiseDB) -> None:
        project = db.create_project("bookkeeping", description="Books", actor="setup")
        assert project.current_status == "awaiting_records"
        assert project.version == 1
        assert project.completion_status is None
        assert [e.stage for e in project.chronology] == ["awaiting_records"]
        assert project.created_at == MONDAY_9AM.isoformat()

    def test_id_uses_prefix(self, db: StagewiseDB) -> None:
        assert db.create_project("standard").id.startswith("test-")

    def test_initial_assignee(self, bookkeeping_project: Project) -> None:
        assert bookkeeping_project.current_assignee_id == "cm-1"
        assert bookkeeping_project.role_assignments == {"reviewer": "rv-1"}

    def test_unknown_type(self, db: StagewiseDB) -> None:
        with pytest.raises(ConfigurationError, match="Unknown project type"):
            db.create_project("payroll")

    def test_bad_role_map(self, db: StagewiseDB) -> None:
        with pytest.raises(TypeError, match="role_assignments"):
            db.create_project("standard", role_assignments={"reviewer": 3})  # type: ignore[dict-item]

    def test_unknown_override_approval(self, db: StagewiseDB) -> None:
        with pytest.raises(ConfigurationError, match="unknown approval"):
            db.create_project("standard", approval_overrides={"done": "standard/approval/nope"})

    def test_created_event(self, db: StagewiseDB, standard_project: Project) -> None:
        (event,) = db.get_project_events(standard_project.id)
        assert event["event_type"] == "created"
        assert event["actor"] == "setup"
        assert event["new_value"] == "intake"

    def test_get_missing_project(self, db: StagewiseDB) -> None:
        with pytest.raises(KeyError):
            db.get_project("test-nope")


class TestListProjects:
    def test_filters(self, db: StagewiseDB, standard_project: Project, bookkeeping_project: Project) -> None:
        assert {p.id for p in db.list_projects()} == {standard_project.id, bookkeeping_project.id}
        assert [p.id for p in db.list_projects(project_type="standard")] == [standard_project.id]
        assert [p.id for p in db.list_projects(stage="awaiting_records")] == [bookkeeping_project.id]

    def test_active_only(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        db.complete_project(standard_project.id, actor=admin)
        assert db.list_projects(active_only=True) == []
        assert len(db.list_projects()) == 1

    def test_limit_and_offset(self, db: StagewiseDB, clock: FakeClock) -> None:
        ids = []
        for _ in range(3):
            ids.append(db.create_project("standard").id)
            clock.advance(minutes=1)
        assert [p.id for p in db.list_projects(limit=2)] == ids[:2]
        assert [p.id for p in db.list_projects(limit=2, offset=2)] == ids[2:]


class TestRoles:
    def test_assign_and_clear(self, db: StagewiseDB, bookkeeping_project: Project) -> None:
        updated = db.assign_role(bookkeeping_project.id, "reviewer", "rv-2", actor="boss")
        assert updated.role_assignments == {"reviewer": "rv-2"}
        assert updated.version == bookkeeping_project.version + 1
        cleared = db.assign_role(bookkeeping_project.id, "reviewer", None, actor="boss")
        assert cleared.role_assignments == {}

    def test_assign_records_event(self, db: StagewiseDB, bookkeeping_project: Project) -> None:
        db.assign_role(bookkeeping_project.id, "reviewer", "rv-2", actor="boss")
        event = db.get_project_events(bookkeeping_project.id)[0]
        assert event["event_type"] == "role_assigned"
        assert (event["old_value"], event["new_value"], event["comment"]) == ("rv-1", "rv-2", "reviewer")

    def test_missing_roles(self, db: StagewiseDB) -> None:
        project = db.create_project("bookkeeping", client_manager_id="cm-1")
        assert db.missing_role_assignments(project.id) == ["bookkeeper", "reviewer"]

    def test_columns_fill_roles(self, db: StagewiseDB, bookkeeping_project: Project) -> None:
        assert db.missing_role_assignments(bookkeeping_project.id) == []

    def test_type_without_roles_is_complete(self, db: StagewiseDB, standard_project: Project) -> None:
        assert db.missing_role_assignments(standard_project.id) == []


class TestCompleteProject:
    def test_complete_from_final_stage(self, db: StagewiseDB, standard_project: Project, admin: Actor, clock: FakeClock) -> None:
        _finish(db, standard_project, admin)
        clock.advance(hours=1)
        done = db.complete_project(standard_project.id, actor=admin, notes="all good")
        assert done.completion_status == "completed_successfully"
        assert done.completed_at == clock.now.isoformat()
        assert done.is_closed

    def test_unsuccessful_completion(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        done = db.complete_project(standard_project.id, actor=admin, completion_status="completed_unsuccessfully")
        assert done.completion_status == "completed_unsuccessfully"

    def test_participant_may_complete(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        done = db.complete_project(standard_project.id, actor=Actor("cm-1"))
        assert done.is_closed

    def test_outsider_may_not_complete(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        with pytest.raises(Unauthorized):
            db.complete_project(standard_project.id, actor=Actor("stranger"))

    def test_not_in_final_stage(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        with pytest.raises(ValidationError, match="final stage"):
            db.complete_project(standard_project.id, actor=admin)

    def test_twice(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        db.complete_project(standard_project.id, actor=admin)
        with pytest.raises(ProjectClosed):
            db.complete_project(standard_project.id, actor=admin)

    def test_bad_status(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        with pytest.raises(ValueError, match="Invalid completion status"):
            db.complete_project(standard_project.id, actor=admin, completion_status="abandoned")  # type: ignore[arg-type]

    def test_closed_project_has_no_legal_targets(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        db.complete_project(standard_project.id, actor=admin)
        assert db.list_legal_transitions(standard_project.id, admin) == []


class TestStageClock:
    def test_clock_for_current_stage(self, db: StagewiseDB, standard_project: Project, worker: Actor, clock: FakeClock) -> None:
        db.transition_project(
            TransitionRequest(project_id=standard_project.id, actor=worker, target_stage="in_progress", reason="assigned")
        )
        entered = clock.now
        sc = db.get_stage_clock(standard_project.id, now=entered + timedelta(hours=3), is_business_hour=_always)
        assert sc.stage == "in_progress"
        assert sc.entered_at == entered.isoformat()
        assert sc.elapsed_business_hours == pytest.approx(3.0)
        assert sc.max_instance_time_hours == 8
        assert not sc.is_overdue

    def test_uses_injected_clock_by_default(self, db: StagewiseDB, standard_project: Project, clock: FakeClock) -> None:
        clock.advance(hours=2)
        assert db.get_stage_clock(standard_project.id).elapsed_business_hours == pytest.approx(2.0)

    def test_unmonitored_stage_never_overdue(self, db: StagewiseDB, standard_project: Project) -> None:
        sc = db.get_stage_clock(standard_project.id, now=MONDAY_9AM + timedelta(days=30), is_business_hour=_always)
        assert sc.max_instance_time_hours is None
        assert not sc.is_overdue

    def test_overdue_listing(self, db: StagewiseDB, admin: Actor, clock: FakeClock) -> None:
        fast = db.create_project("standard")
        slow = db.create_project("standard")
        for project in (fast, slow):
            db.transition_project(
                TransitionRequest(project_id=project.id, actor=admin, target_stage="in_progress", reason="assigned")
            )
        now = clock.now + timedelta(hours=9)
        overdue = db.list_overdue_projects(now=now, is_business_hour=_always)
        assert {c.project_id for c in overdue} == {fast.id, slow.id}
        assert all(c.is_overdue for c in overdue)
        assert db.list_overdue_projects(now=clock.now + timedelta(hours=7), is_business_hour=_always) == []

    def test_completed_projects_not_listed(self, db: StagewiseDB, standard_project: Project, admin: Actor) -> None:
        _finish(db, standard_project, admin)
        db.complete_project(standard_project.id, actor=admin)
        assert db.list_overdue_projects(now=MONDAY_9AM + timedelta(days=60), is_business_hour=_always) == []

    def test_to_dict(self, db: StagewiseDB, standard_project: Project) -> None:
        data = db.get_stage_clock(standard_project.id, now=MONDAY_9AM, is_business_hour=_always).to_dict()
        assert data["project_id"] == standard_project.id
        assert data["elapsed_business_hours"] == 0.0
        assert data["is_overdue"] is False
