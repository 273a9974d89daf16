"""MCP tools for pipeline configuration: types, reasons, custom fields, approval fields."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from stagewise.db_transitions import approval_field_info, custom_field_info, reason_info
from stagewise.errors import ConfigurationError
from stagewise.mcp_tools.common import _error, _parse_args, _text
from stagewise.types.inputs import (
    GetProjectTypeArgs,
    ListApprovalFieldsArgs,
    ListCustomFieldsArgs,
    ListReasonsArgs,
)


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for pipeline-domain tools."""
    tools = [
        Tool(
            name="list_project_types",
            description="List all registered project types (pipelines) with their stage counts.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_project_type",
            description="Get the full pipeline of a project type: stages, reasons, approval gates and the transition policy.",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {"type": "string", "description": "Project type name (e.g. 'standard', 'bookkeeping')"},
                },
                "required": ["type"],
            },
        ),
        Tool(
            name="list_reasons",
            description="List the change reasons for moves into a stage, in display order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "stage_id": {"type": "string", "description": "Stage id, e.g. 'standard/done'"},
                },
                "required": ["stage_id"],
            },
        ),
        Tool(
            name="list_custom_fields",
            description="List the custom fields a change reason collects (name, type, required, options).",
            inputSchema={
                "type": "object",
                "properties": {
                    "reason_id": {"type": "string", "description": "Reason id, e.g. 'standard/in_progress/rework'"},
                },
                "required": ["reason_id"],
            },
        ),
        Tool(
            name="list_approval_fields",
            description="List the fields of an approval gate, with the value each must satisfy.",
            inputSchema={
                "type": "object",
                "properties": {
                    "stage_approval_id": {
                        "type": "string",
                        "description": "Approval id, e.g. 'standard/approval/sign_off'",
                    },
                },
                "required": ["stage_approval_id"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "list_project_types": _handle_list_project_types,
        "get_project_type": _handle_get_project_type,
        "list_reasons": _handle_list_reasons,
        "list_custom_fields": _handle_list_custom_fields,
        "list_approval_fields": _handle_list_approval_fields,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_list_project_types(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    tracker = _get_db()
    return _text(sorted(tracker.list_project_types(), key=lambda t: t["type"]))


async def _handle_get_project_type(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, GetProjectTypeArgs)
    info = _get_db().get_project_type_info(args["type"])
    if info is None:
        return _error(f"Unknown type: {args['type']}", "not_found")
    return _text(info)


async def _handle_list_reasons(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, ListReasonsArgs)
    try:
        reasons = _get_db().list_reasons(args["stage_id"])
    except ConfigurationError as e:
        return _error(str(e), e.code)
    return _text([reason_info(r) for r in reasons])


async def _handle_list_custom_fields(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, ListCustomFieldsArgs)
    try:
        fields = _get_db().list_custom_fields(args["reason_id"])
    except ConfigurationError as e:
        return _error(str(e), e.code)
    return _text([custom_field_info(f) for f in fields])


async def _handle_list_approval_fields(arguments: dict[str, Any]) -> list[TextContent]:
    from stagewise.mcp_server import _get_db

    args = _parse_args(arguments, ListApprovalFieldsArgs)
    try:
        fields = _get_db().list_approval_fields(args["stage_approval_id"])
    except ConfigurationError as e:
        return _error(str(e), e.code)
    return _text([approval_field_info(f) for f in fields])
