"""MCP tools for projects and stage transitions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from stagewise.authorizer import Actor
from stagewise.db_transitions import approval_field_info, stage_info, validation_result_info
from stagewise.errors import StagewiseError, Unauthorized
from stagewise.mcp_tools.common import _error, _parse_args, _stagewise_error, _text, _validate_actor
from stagewise.types.api import LegalTransitionsResponse, MissingRolesResponse, ValidationFailure
from stagewise.types.inputs import (
    CommitTransitionArgs,
    GetElapsedTimeArgs,
    BulkMoveEligibilityArgs,
    BulkTransitionArgs,
    GetProjectArgs,
    ListLegalTransitionsArgs,
    TransitionArgs,
)
from stagewise.validator import Attachment, TransitionRequest, ValidationResult

_ACTOR_PROPS: dict[str, Any] = {
    "actor": {"type": "string", "description": "Acting user id (recorded in the audit trail)"},
    "role": {"type": "string", "description": "Acting user's role (default 'ordinary'); elevated roles may skip stages"},
}

_TRANSITION_PROPS: dict[str, Any] = {
    "project_id": {"type": "string", "description": "Project ID"},
    **_ACTOR_PROPS,
    "target_stage": {"type": "string", "description": "Target stage name (use list_legal_transitions)"},
    "reason": {"type": "string", "description": "Change reason text or id (use list_reasons)"},
    "field_responses": {
        "type": "object",
        "description": "Answers to the reason's custom fields, keyed by field name (use list_custom_fields)",
    },
    "approval_responses": {
        "type": "object",
        "description": "Answers to the approval gate, keyed by field name. Omit to learn whether a gate applies.",
    },
    "notes": {"type": "string", "description": "Plain-text notes"},
    "notes_html": {"type": "string", "description": "Rich-text notes; plain text is derived when notes is empty"},
    "attachments": {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "file_name": {"type": "string"},
                "file_size": {"type": "integer", "minimum": 0},
                "file_type": {"type": "string"},
                "object_path": {"type": "string"},
            },
            "required": ["file_name", "file_size", "object_path"],
        },
        "description": "Attachment metadata (the files themselves live in object storage)",
    },
}

_TRANSITION_REQUIRED = ["project_id", "actor", "target_stage", "reason"]


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for project and transition tools."""
    tools = [
        Tool(
            name="get_project",
            description="Get a project: current stage, chronology, assignee, role assignments and version.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": {"type": "string", "description": "Project ID"}},
                "required": ["project_id"],
            },
        ),
        Tool(
            name="list_legal_transitions",
            description="List the stages an actor may move a project to in one hop. Empty for completed projects.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": {"type": "string", "description": "Project ID"}, **_ACTOR_PROPS},
                "required": ["project_id", "actor"],
            },
        ),
        Tool(
            name="validate_transition",
            description=(
                "Check a transition without applying it. Returns outcome valid, invalid (with itemized errors) "
                "or pending_approval (with the approval fields to answer)."
            ),
            inputSchema={"type": "object", "properties": _TRANSITION_PROPS, "required": _TRANSITION_REQUIRED},
        ),
        Tool(
            name="commit_transition",
            description=(
                "Validate and apply a transition atomically: appends the chronology entry, moves the project "
                "and records the audit trail. Pass expected_version to guard against concurrent edits."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    **_TRANSITION_PROPS,
                    "expected_version": {
                        "type": "integer",
                        "minimum": 1,
                        "description": "Fail with concurrent_modification if the project version differs",
                    },
                },
                "required": _TRANSITION_REQUIRED,
            },
        ),
        Tool(
            name="get_elapsed_time",
            description="Business hours a project has spent in its current stage, and whether it is past the stage limit.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": {"type": "string", "description": "Project ID"}},
                "required": ["project_id"],
            },
        ),
        Tool(
            name="list_overdue_projects",
            description="List active projects whose time in the current stage has reached the stage limit.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_missing_roles",
            description="List the stage roles of a project's pipeline that nobody fills on the project.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": {"type": "string", "description": "Project ID"}},
                "required": ["project_id"],
            },
        ),
        Tool(
            name="get_transition_history",
            description="Get a project's transition records (oldest first) with field and approval responses.",
            inputSchema={
                "type": "object",
                "properties": {"project_id": {"type": "string", "description": "Project ID"}},
                "required": ["project_id"],
            },
        ),
        Tool(
            name="bulk_move_eligibility",
            description=(
                "Check whether projects of a type can be moved into a stage together. Lists the restrictions "
                "and the reasons usable for a bulk move (no approval gate, no custom fields)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {"type": "string", "description": "Project type name"},
                    "target_stage": {"type": "string", "description": "Target stage name"},
                },
                "required": ["type", "target_stage"],
            },
        ),
        Tool(
            name="bulk_transition",
            description=(
                "Move several projects of one type into a stage with one reason. Each project is committed "
                "separately; projects that fail validation are listed under failures and the rest still move."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "project_ids": {"type": "array", "items": {"type": "string"}, "minItems": 1, "description": "Project IDs"},
                    **_ACTOR_PROPS,
                    "target_stage": {"type": "string", "description": "Target stage name (use bulk_move_eligibility)"},
                    "reason": {"type": "string", "description": "Change reason text or id"},
                    "notes": {"type": "string", "description": "Plain-text notes recorded on every project"},
                    "notes_html": {"type": "string", "description": "Rich-text notes recorded on every project"},
                },
                "required": ["project_ids", "actor", "target_stage", "reason"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "get_project": _handle_get_project,
        "list_legal_transitions": _handle_list_legal_transitions,
        "validate_transition": _handle_validate_transition,
        "commit_transition": _handle_commit_transition,
        "get_elapsed_time": _handle_get_elapsed_time,
        "list_overdue_projects": _handle_list_overdue_projects,
        "get_missing_roles": _handle_get_missing_roles,
        "get_transition_history": _handle_get_transition_history,
        "bulk_move_eligibility": _handle_bulk_move_eligibility,
        "bulk_transition": _handle_bulk_transition,
    }

    return tools, handlers


def _build_request(args: TransitionArgs) -> tuple[TransitionRequest | None, list[TextContent] | None]:
    actor, err = _validate_actor(args["actor"], args.get("role"))
    if err:
        return None, err
    assert actor is not None
    try:
        attachments = tuple(Attachment.from_dict(a) for a in args.get("attachments", []))
    except (ValueError, TypeError) as e:
        return None, _error(f"Invalid attachment: {e}", "validation_error")
    return (
        TransitionRequest(
            project_id=args["project_id"],
            actor=actor,
            target_stage=args["target_stage"],
            reason=args["reason"],
            field_responses=args.get("field_responses") or {},
            approval_responses=args.get("approval_responses"),
            notes=args.get("notes", ""),
            notes_html=args.get("notes_html", ""),
            attachments=attachments,
        ),
        None,
    )


def _failure(result: ValidationResult) -> ValidationFailure:
    exc = result.to_exception()
    data: ValidationFailure = {
        "error": str(exc),
        "code": "approval_required" if result.outcome == "pending_approval" else exc.code,
        "outcome": result.outcome,
        "errors": validation_result_info(result)["errors"],
    }
    if result.approval_fields:
        data["approval_fields"] = [approval_field_info(f) for f in result.approval_fields]
    return data


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_get_project(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, GetProjectArgs)
    try:
        return _text(_get_db().get_project(args["project_id"]).to_dict())
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")


async def _handle_list_legal_transitions(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, ListLegalTransitionsArgs)
    actor, err = _validate_actor(args["actor"], args.get("role"))
    if err:
        return err
    assert isinstance(actor, Actor)
    tracker = _get_db()
    try:
        project = tracker.get_project(args["project_id"])
        targets = tracker.list_legal_transitions(args["project_id"], actor)
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(
        LegalTransitionsResponse(
            project_id=project.id,
            current_status=project.current_status,
            actor=actor.id,
            role=actor.role,
            targets=[stage_info(s) for s in targets],
        )
    )


async def _handle_validate_transition(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, TransitionArgs)
    request, err = _build_request(args)
    if err:
        return err
    assert request is not None
    try:
        result = _get_db().validate_transition(request)
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(validation_result_info(result))


async def _handle_commit_transition(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, CommitTransitionArgs)
    request, err = _build_request(args)
    if err:
        return err
    assert request is not None
    tracker = _get_db()
    try:
        result = tracker.validate_transition(request)
        if not result.ok:
            if isinstance(result.cause, Unauthorized):
                return _stagewise_error(tracker, request.project_id, result.cause, request.actor)
            return _text(_failure(result))
        commit = tracker.transition_project(request, expected_version=args.get("expected_version"))
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    except StagewiseError as e:
        return _stagewise_error(tracker, request.project_id, e, request.actor)
    return _text(commit.to_dict())


async def _handle_get_elapsed_time(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, GetElapsedTimeArgs)
    try:
        stage_clock = _get_db().get_stage_clock(args["project_id"])
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(stage_clock.to_dict())


async def _handle_list_overdue_projects(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    return _text([c.to_dict() for c in _get_db().list_overdue_projects()])


async def _handle_get_missing_roles(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, GetProjectArgs)
    try:
        missing = _get_db().missing_role_assignments(args["project_id"])
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(MissingRolesResponse(project_id=args["project_id"], missing_roles=missing, complete=not missing))


async def _handle_get_transition_history(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, GetProjectArgs)
    try:
        records = _get_db().get_transition_history(args["project_id"])
    except KeyError:
        return _error(f"Project not found: {args['project_id']}", "not_found")
    return _text([r.to_dict() for r in records])


async def _handle_bulk_move_eligibility(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, BulkMoveEligibilityArgs)
    try:
        eligibility = _get_db().bulk_move_eligibility(args["type"], args["target_stage"])
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(eligibility.to_dict())


async def _handle_bulk_transition(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, BulkTransitionArgs)
    actor, err = _validate_actor(args["actor"], args.get("role"))
    if err:
        return err
    assert isinstance(actor, Actor)
    try:
        result = _get_db().bulk_transition(
            args["project_ids"],
            actor,
            args["target_stage"],
            args["reason"],
            notes=args.get("notes", ""),
            notes_html=args.get("notes_html", ""),
        )
    except KeyError as e:
        return _error(f"Project not found: {e.args[0]}", "not_found")
    except StagewiseError as e:
        return _error(str(e), e.code)
    return _text(result.to_dict())
