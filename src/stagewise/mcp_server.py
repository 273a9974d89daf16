"""MCP server for the stagewise transition engine.

Primary interface for agents. Direct SQLite, no daemon.
Exposes pipeline queries and stage transitions as MCP tools.

Usage:
    stagewise-mcp                              # Auto-discover .stagewise/ from cwd
    stagewise-mcp --project /path/to/project   # Explicit project root
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import GetPromptResult, Prompt, PromptMessage, TextContent, Tool

from stagewise.core import STAGEWISE_DIR_NAME, StagewiseDB, find_stagewise_root
from stagewise.mcp_tools import pipeline as pipeline_tools
from stagewise.mcp_tools import transitions as transition_tools
from stagewise.mcp_tools.common import _error, _text

server = Server("stagewise")
db: StagewiseDB | None = None
_stagewise_dir: Path | None = None
_logger: logging.Logger | None = None

_TOOLS: list[Tool] = []
_HANDLERS: dict[str, Callable[..., Any]] = {}
for _register in (pipeline_tools.register, transition_tools.register):
    _tools, _handlers = _register()
    _TOOLS.extend(_tools)
    _HANDLERS.update(_handlers)


def _get_db() -> StagewiseDB:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_WORKFLOW_TEXT_STATIC = """\
# Stagewise Workflow

Projects in this workspace move through configured stage pipelines.
Stagewise data lives in `.stagewise/` and is accessed via these MCP tools.

## Moving a project
1. `list_legal_transitions` with your actor id and role to see where it may go
2. `list_reasons` for the target stage id (`{type}/{stage}`)
3. `list_custom_fields` for the chosen reason and collect the answers
4. `validate_transition`; an outcome of `pending_approval` lists the approval fields to answer
5. `commit_transition` with the same arguments plus `approval_responses`

## Key tools
- **list_project_types / get_project_type**: discover pipelines
- **get_project / get_transition_history**: read project state and its audit trail
- **get_elapsed_time / list_overdue_projects**: business-hour clocks against stage limits
- **get_missing_roles**: stage roles nobody fills on a project
- **bulk_move_eligibility / bulk_transition**: move many projects of one type with a reason that needs no answers
"""


def _build_workflow_text() -> str:
    """Build the workflow prompt, listing registered pipelines when available."""
    if db is None:
        return _WORKFLOW_TEXT_STATIC
    try:
        types_list = _get_db().pipelines.list_types()
        if not types_list:
            return _WORKFLOW_TEXT_STATIC
        lines = [_WORKFLOW_TEXT_STATIC, "\n## Registered Pipelines\n"]
        for pt in sorted(types_list, key=lambda t: t.type):
            stages = " -> ".join(s.name for s in pt.stages)
            lines.append(f"- **{pt.type}** ({pt.display_name}): {stages}")
        return "\n".join(lines) + "\n"
    except Exception:
        logging.getLogger(__name__).error("Failed to build dynamic workflow text; falling back to static", exc_info=True)
        return _WORKFLOW_TEXT_STATIC


@server.list_prompts()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_prompts() -> list[Prompt]:
    return [
        Prompt(
            name="stagewise-workflow",
            description="Stagewise transition guide with the registered pipelines. Use at session start.",
        ),
    ]


@server.get_prompt()  # type: ignore[untyped-decorator,no-untyped-call]
async def get_workflow_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
    if name != "stagewise-workflow":
        msg = f"Unknown prompt: {name}"
        raise ValueError(msg)
    return GetPromptResult(
        description="Stagewise transition guide",
        messages=[PromptMessage(role="user", content=TextContent(type="text", text=_build_workflow_text()))],
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator,no-untyped-call]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    handler = _HANDLERS.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}", "unknown_tool")
    tracker = _get_db()
    t0 = time.monotonic()

    try:
        result: list[TextContent] = await handler(arguments)
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result
    finally:
        # Roll back anything a failed mutation left open; the next commit would flush it.
        if tracker.conn.in_transaction:
            tracker.conn.rollback()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None) -> None:
    global db, _stagewise_dir, _logger

    if project_path:
        stagewise_dir = project_path / STAGEWISE_DIR_NAME
        if not stagewise_dir.is_dir():
            print(f"Error: {stagewise_dir} not found. Run 'stagewise init' first.", file=sys.stderr)
            sys.exit(1)
    else:
        try:
            stagewise_dir = find_stagewise_root()
        except FileNotFoundError:
            print(f"Error: No {STAGEWISE_DIR_NAME}/ found. Run 'stagewise init' first.", file=sys.stderr)
            sys.exit(1)

    _stagewise_dir = stagewise_dir
    db = StagewiseDB.from_project(stagewise_dir.parent)

    from stagewise.logging import setup_logging

    _logger = setup_logging(stagewise_dir)
    _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"project": str(stagewise_dir.parent)}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Stagewise MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .stagewise/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
