"""CLI commands for projects: create, show, list, transitions, validate, move, bulk moves, complete, history, clock, overdue, roles."""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from stagewise.cli_common import coerce_value, fail, get_actor, get_db, parse_pairs
from stagewise.core import StagewiseDB
from stagewise.db_base import COMPLETION_STATUSES
from stagewise.db_transitions import stage_info, validation_result_info
from stagewise.errors import StagewiseError, Unauthorized
from stagewise.validator import Attachment, TransitionRequest, effective_approval_id, resolve_reason


def _not_found(project_id: str, as_json: bool) -> NoReturn:
    fail(f"Not found: {project_id}", as_json=as_json, code="not_found")


def _field_types(db: StagewiseDB, project_id: str, target: str, reason: str) -> tuple[dict[str, str], dict[str, str]]:
    """Declared types of the reason's fields and of the gate's fields, where they resolve."""
    project = db.get_project(project_id)
    stage = db.pipelines.stage_by_name(project.project_type, target)
    if stage is None:
        return {}, {}
    matched = resolve_reason(db.pipelines.reasons_for(stage.id), reason)
    if matched is None:
        return {}, {}
    custom = {f.field_name: f.field_type for f in db.pipelines.fields_for(matched.id)}
    approval_id = effective_approval_id(project, stage, matched)
    gate: dict[str, str] = {}
    if approval_id and db.pipelines.get_approval(approval_id) is not None:
        gate = {f.field_name: f.field_type for f in db.pipelines.approval_fields_for(approval_id)}
    return custom, gate


def _build_request(
    ctx: click.Context,
    db: StagewiseDB,
    project_id: str,
    target: str,
    reason: str,
    field: tuple[str, ...],
    approval: tuple[str, ...],
    notes: str,
    notes_html: str,
    attach: tuple[str, ...],
    as_json: bool,
) -> TransitionRequest:
    actor = get_actor(ctx, as_json=as_json)
    raw_fields = parse_pairs(field, option="field", as_json=as_json)
    raw_approvals = parse_pairs(approval, option="approval", as_json=as_json)
    custom_types, gate_types = _field_types(db, project_id, target, reason)

    attachments: list[Attachment] = []
    for item in attach:
        try:
            attachments.append(Attachment.from_dict(json_mod.loads(item)))
        except (json_mod.JSONDecodeError, ValueError, TypeError) as e:
            fail(f"Invalid attachment {item!r}: {e}", as_json=as_json, code="validation_error")

    return TransitionRequest(
        project_id=project_id,
        actor=actor,
        target_stage=target,
        reason=reason,
        field_responses={k: coerce_value(v, custom_types.get(k)) for k, v in raw_fields.items()},
        approval_responses={k: coerce_value(v, gate_types.get(k)) for k, v in raw_approvals.items()} if approval else None,
        notes=notes,
        notes_html=notes_html,
        attachments=tuple(attachments),
    )


def _print_project(project: dict[str, Any]) -> None:
    click.echo(f"{project['id']}  [{project['project_type']}]  {project['current_status']}")
    if project["description"]:
        click.echo(f"  {project['description']}")
    if project["completion_status"]:
        click.echo(f"  Completed: {project['completion_status']} at {project['completed_at']}")
    click.echo(f"  Assignee: {project['current_assignee_id'] or '(none)'}")
    if project["client_manager_id"]:
        click.echo(f"  Client manager: {project['client_manager_id']}")
    if project["bookkeeper_id"]:
        click.echo(f"  Bookkeeper: {project['bookkeeper_id']}")
    for role, user in sorted(project["role_assignments"].items()):
        click.echo(f"  {role}: {user}")
    click.echo(f"  Version: {project['version']}")


_transition_options = [
    click.option("--to", "target", required=True, help="Target stage name"),
    click.option("--reason", "-r", required=True, help="Change reason (text or id)"),
    click.option("--field", "-f", multiple=True, help="Reason field as key=value (repeatable)"),
    click.option("--approval", "-a", multiple=True, help="Approval answer as key=value (repeatable)"),
    click.option("--notes", default="", help="Plain-text notes"),
    click.option("--notes-html", default="", help="Rich-text notes"),
    click.option("--attach", multiple=True, help='Attachment as JSON, e.g. {"file_name": ..., "file_size": ..., "object_path": ...}'),
    click.option("--json", "as_json", is_flag=True, help="Output as JSON"),
]


def transition_options(func: Any) -> Any:
    for option in reversed(_transition_options):
        func = option(func)
    return func


@click.command()
@click.argument("project_type")
@click.option("--description", "-d", default="", help="Description")
@click.option("--client-manager", default=None, help="Client manager user id")
@click.option("--bookkeeper", default=None, help="Bookkeeper user id")
@click.option("--role", "roles", multiple=True, help="Role assignment as role=user (repeatable)")
@click.option("--approval-override", multiple=True, help="Gate override as stage=approval_id (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    project_type: str,
    description: str,
    client_manager: str | None,
    bookkeeper: str | None,
    roles: tuple[str, ...],
    approval_override: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a project in the first stage of PROJECT_TYPE."""
    role_map = parse_pairs(roles, option="role", as_json=as_json)
    overrides = parse_pairs(approval_override, option="approval-override", as_json=as_json)
    with get_db() as db:
        try:
            project = db.create_project(
                project_type,
                description=description,
                actor=ctx.obj["actor"],
                client_manager_id=client_manager,
                bookkeeper_id=bookkeeper,
                role_assignments=role_map,
                approval_overrides=overrides,
            )
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(project.to_dict(), indent=2, default=str))
            return
        click.echo(f"Created {project.id}: {project.project_type} in {project.current_status}")


@click.command()
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(project_id: str, as_json: bool) -> None:
    """Show project details and chronology."""
    with get_db() as db:
        try:
            project = db.get_project(project_id)
        except KeyError:
            _not_found(project_id, as_json)
        data = project.to_dict()
        if as_json:
            click.echo(json_mod.dumps(data, indent=2, default=str))
            return
        _print_project(data)
        click.echo("\n  Chronology:")
        for entry in project.chronology:
            click.echo(f"    {entry.entered_at.isoformat()}  {entry.stage}")


@click.command("list")
@click.option("--type", "project_type", default=None, help="Filter by project type")
@click.option("--stage", default=None, help="Filter by current stage")
@click.option("--active", "active_only", is_flag=True, help="Only projects not yet completed")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_projects(project_type: str | None, stage: str | None, active_only: bool, limit: int, as_json: bool) -> None:
    """List projects."""
    with get_db() as db:
        projects = db.list_projects(project_type=project_type, stage=stage, active_only=active_only, limit=limit)
        if as_json:
            click.echo(json_mod.dumps([p.to_dict() for p in projects], indent=2, default=str))
            return
        for p in projects:
            done = f" ({p.completion_status})" if p.completion_status else ""
            click.echo(f"  {p.id}  {p.project_type:<12} {p.current_status}{done}")
        click.echo(f"\n{len(projects)} projects")


@click.command()
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def transitions(ctx: click.Context, project_id: str, as_json: bool) -> None:
    """Show the stages the current actor may move a project to."""
    actor = get_actor(ctx, as_json=as_json)
    with get_db() as db:
        try:
            project = db.get_project(project_id)
            targets = db.list_legal_transitions(project_id, actor)
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            data = {
                "project_id": project_id,
                "current_status": project.current_status,
                "actor": actor.id,
                "role": actor.role,
                "targets": [stage_info(s) for s in targets],
            }
            click.echo(json_mod.dumps(data, indent=2))
            return
        if not targets:
            click.echo(f"No legal transitions from {project.current_status} for {actor.id} ({actor.role})")
            return
        click.echo(f"From {project.current_status}:")
        for s in targets:
            click.echo(f"  -> {s.name}")


@click.command("validate")
@click.argument("project_id")
@transition_options
@click.pass_context
def validate_cmd(
    ctx: click.Context,
    project_id: str,
    target: str,
    reason: str,
    field: tuple[str, ...],
    approval: tuple[str, ...],
    notes: str,
    notes_html: str,
    attach: tuple[str, ...],
    as_json: bool,
) -> None:
    """Check a transition without applying it. Exits 1 unless valid."""
    with get_db() as db:
        try:
            request = _build_request(ctx, db, project_id, target, reason, field, approval, notes, notes_html, attach, as_json)
            result = db.validate_transition(request)
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        data = validation_result_info(result)
        if as_json:
            click.echo(json_mod.dumps(data, indent=2))
        else:
            click.echo(f"Outcome: {result.outcome}")
            for issue in result.errors:
                where = f" [{issue.field}]" if issue.field else ""
                click.echo(f"  {issue.kind}{where}: {issue.message}")
            if result.outcome == "pending_approval":
                click.echo("  Approval fields: " + ", ".join(f.field_name for f in result.approval_fields))
        if not result.ok:
            sys.exit(1)


@click.command()
@click.argument("project_id")
@transition_options
@click.option("--expected-version", type=int, default=None, help="Fail if the project version differs")
@click.pass_context
def move(
    ctx: click.Context,
    project_id: str,
    target: str,
    reason: str,
    field: tuple[str, ...],
    approval: tuple[str, ...],
    notes: str,
    notes_html: str,
    attach: tuple[str, ...],
    as_json: bool,
    expected_version: int | None,
) -> None:
    """Validate and commit a stage transition."""
    with get_db() as db:
        try:
            request = _build_request(ctx, db, project_id, target, reason, field, approval, notes, notes_html, attach, as_json)
            result = db.validate_transition(request)
            if not result.ok:
                extra: dict[str, Any] = {"outcome": result.outcome, "errors": [e.to_dict() for e in result.errors]}
                if isinstance(result.cause, Unauthorized):
                    extra["legal_targets"] = [s.name for s in db.list_legal_transitions(project_id, request.actor)]
                err = result.to_exception()
                fail(str(err), as_json=as_json, code=err.code, **extra)
            commit = db.transition_project(request, expected_version=expected_version)
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(commit.to_dict(), indent=2, default=str))
            return
        record = commit.transition_record
        click.echo(f"Moved {project_id}: {record.from_stage} -> {record.to_stage} ({record.reason})")
        if record.assignee_id:
            click.echo(f"  Assignee: {record.assignee_id}")
        if commit.notification_preview:
            click.echo(f"  Notify: {commit.notification_preview.subject}")


@click.command()
@click.argument("project_id")
@click.option(
    "--status",
    "completion_status",
    type=click.Choice(sorted(COMPLETION_STATUSES)),
    default="completed_successfully",
    help="Completion status",
)
@click.option("--notes", default="", help="Completion notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def complete(ctx: click.Context, project_id: str, completion_status: str, notes: str, as_json: bool) -> None:
    """Close a project sitting in a final stage."""
    actor = get_actor(ctx, as_json=as_json)
    with get_db() as db:
        try:
            project = db.complete_project(project_id, actor=actor, completion_status=completion_status, notes=notes)  # type: ignore[arg-type]
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(project.to_dict(), indent=2, default=str))
            return
        click.echo(f"Completed {project.id}: {project.completion_status}")


@click.command()
@click.argument("project_id")
@click.option("--events", "show_events", is_flag=True, help="Show the event log instead of transitions")
@click.option("--limit", default=50, type=int, help="Max events (default 50)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(project_id: str, show_events: bool, limit: int, as_json: bool) -> None:
    """Show a project's transition audit trail."""
    with get_db() as db:
        try:
            if show_events:
                events = db.get_project_events(project_id, limit=limit)
            else:
                records = db.get_transition_history(project_id)
        except KeyError:
            _not_found(project_id, as_json)
        if show_events:
            if as_json:
                click.echo(json_mod.dumps(events, indent=2, default=str))
                return
            for ev in events:
                change = f"{ev['old_value'] or ''} -> {ev['new_value'] or ''}"
                click.echo(f"  {ev['created_at']}  {ev['event_type']:<16} {change}  by {ev['actor'] or '-'}")
            return
        if as_json:
            click.echo(json_mod.dumps([r.to_dict() for r in records], indent=2, default=str))
            return
        if not records:
            click.echo("(no transitions)")
        for r in records:
            click.echo(f"  {r.occurred_at}  {r.from_stage} -> {r.to_stage}  [{r.reason}]  by {r.actor_id}")
            for resp in r.field_responses:
                click.echo(f"      {resp.field_name}: {resp.value}")
            if r.notes:
                click.echo(f"      notes: {r.notes}")


@click.command()
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def clock(project_id: str, as_json: bool) -> None:
    """Show business time spent in the current stage."""
    with get_db() as db:
        try:
            stage_clock = db.get_stage_clock(project_id)
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(stage_clock.to_dict(), indent=2))
            return
        limit = f" / {stage_clock.max_instance_time_hours:g}h" if stage_clock.max_instance_time_hours else ""
        flag = "  OVERDUE" if stage_clock.is_overdue else ""
        click.echo(f"{project_id} in {stage_clock.stage} since {stage_clock.entered_at}")
        click.echo(f"  {stage_clock.elapsed_business_hours:.2f}h business time{limit}{flag}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def overdue(as_json: bool) -> None:
    """List active projects past their stage's time limit."""
    with get_db() as db:
        clocks = db.list_overdue_projects()
        if as_json:
            click.echo(json_mod.dumps([c.to_dict() for c in clocks], indent=2))
            return
        if not clocks:
            click.echo("No overdue projects.")
            return
        for c in clocks:
            click.echo(f"  {c.project_id}  {c.stage:<16} {c.elapsed_business_hours:.2f}h / {c.max_instance_time_hours:g}h")


@click.command("assign-role")
@click.argument("project_id")
@click.argument("role")
@click.argument("user_id", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def assign_role(ctx: click.Context, project_id: str, role: str, user_id: str | None, as_json: bool) -> None:
    """Assign USER_ID to ROLE on a project (omit USER_ID to clear)."""
    with get_db() as db:
        try:
            project = db.assign_role(project_id, role, user_id, actor=ctx.obj["actor"])
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(project.to_dict(), indent=2, default=str))
            return
        click.echo(f"{role} on {project_id}: {user_id or '(cleared)'}")


@click.command()
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def roles(project_id: str, as_json: bool) -> None:
    """Report stage roles nobody fills on a project."""
    with get_db() as db:
        try:
            missing = db.missing_role_assignments(project_id)
        except KeyError:
            _not_found(project_id, as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            data = {"project_id": project_id, "missing_roles": missing, "complete": not missing}
            click.echo(json_mod.dumps(data, indent=2))
            return
        if not missing:
            click.echo("All stage roles are assigned.")
            return
        click.echo("Missing roles: " + ", ".join(missing))


@click.command("bulk-eligibility")
@click.argument("project_type")
@click.argument("stage")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def bulk_eligibility(project_type: str, stage: str, as_json: bool) -> None:
    """Check whether PROJECT_TYPE projects can be moved into STAGE in bulk."""
    with get_db() as db:
        try:
            eligibility = db.bulk_move_eligibility(project_type, stage)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(eligibility.to_dict(), indent=2))
            return
        verdict = "eligible" if eligibility.eligible else "not eligible"
        click.echo(f"{eligibility.stage_id}: {verdict} for bulk moves")
        if eligibility.restrictions:
            click.echo("  Restrictions: " + ", ".join(eligibility.restrictions))
        for reason in eligibility.valid_reasons:
            click.echo(f"  {reason.reason}  ({reason.id})")


@click.command("bulk-move")
@click.argument("project_ids", nargs=-1, required=True)
@click.option("--to", "target", required=True, help="Target stage name")
@click.option("--reason", "-r", required=True, help="Change reason (text or id); must need no fields or approval")
@click.option("--notes", default="", help="Plain-text notes")
@click.option("--notes-html", default="", help="Rich-text notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def bulk_move(
    ctx: click.Context,
    project_ids: tuple[str, ...],
    target: str,
    reason: str,
    notes: str,
    notes_html: str,
    as_json: bool,
) -> None:
    """Move several projects of one type into a stage with one reason. Exits 1 if any project fails."""
    actor = get_actor(ctx, as_json=as_json)
    with get_db() as db:
        try:
            result = db.bulk_transition(list(project_ids), actor, target, reason, notes=notes, notes_html=notes_html)
        except KeyError as e:
            _not_found(str(e.args[0]), as_json)
        except StagewiseError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(result.to_dict(), indent=2, default=str))
        else:
            for commit in result.moved:
                record = commit.transition_record
                click.echo(f"Moved {commit.project.id}: {record.from_stage} -> {record.to_stage}")
            for failure in result.failures:
                click.echo(f"Failed {failure.project_id}: {failure.error}", err=True)
            click.echo(f"{len(result.moved)} of {len(result.moved) + len(result.failures)} projects moved to {target}")
        if result.failures:
            sys.exit(1)
