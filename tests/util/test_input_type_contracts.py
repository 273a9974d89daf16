"""Sync test: MCP JSON Schema <-> TypedDict structural agreement.

Introspects each MCP tool's inputSchema and verifies the corresponding
TypedDict's keys and required/optional annotations match. Type-level
agreement (str vs int) is left to mypy.
"""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import get_type_hints

import pytest
from mcp.types import Tool

from stagewise.types.inputs import TOOL_ARGS_MAP

_MCP_MODULES = [
    "stagewise.mcp_tools.pipeline",
    "stagewise.mcp_tools.transitions",
]


def _discover_tools() -> list[tuple[str, Tool]]:
    """Call register() on each MCP module, collect (tool_name, Tool) pairs."""
    result: list[tuple[str, Tool]] = []
    for mod_path in _MCP_MODULES:
        mod = importlib.import_module(mod_path)
        tools, _ = mod.register()
        for tool in tools:
            result.append((tool.name, tool))
    return result


_ALL_TOOLS = _discover_tools()

_TOOLS_WITH_ARGS = [(name, tool) for name, tool in _ALL_TOOLS if tool.inputSchema.get("properties", {})]

_TOOLS_WITHOUT_ARGS = [(name, tool) for name, tool in _ALL_TOOLS if not tool.inputSchema.get("properties", {})]


@pytest.mark.parametrize(
    ("tool_name", "tool"),
    _TOOLS_WITH_ARGS,
    ids=[name for name, _ in _TOOLS_WITH_ARGS],
)
class TestSchemaTypedDictSync:
    """Verify each tool's JSON Schema matches its TypedDict structurally."""

    def test_typeddict_registered(self, tool_name: str, tool: Tool) -> None:
        assert tool_name in TOOL_ARGS_MAP, (
            f"Tool '{tool_name}' has inputSchema properties but no TypedDict in TOOL_ARGS_MAP. Add one to types/inputs.py."
        )

    def test_keys_match(self, tool_name: str, tool: Tool) -> None:
        td_cls = TOOL_ARGS_MAP[tool_name]
        schema_keys = set(tool.inputSchema.get("properties", {}).keys())
        td_keys = set(get_type_hints(td_cls).keys())
        assert td_keys == schema_keys, (
            f"Key mismatch for '{tool_name}':\n  TypedDict extra: {td_keys - schema_keys}\n  Schema extra:    {schema_keys - td_keys}"
        )

    def test_required_fields_match(self, tool_name: str, tool: Tool) -> None:
        td_cls = TOOL_ARGS_MAP[tool_name]
        schema_required = set(tool.inputSchema.get("required", []))
        assert td_cls.__required_keys__ == schema_required  # type: ignore[attr-defined]

    def test_optional_fields_match(self, tool_name: str, tool: Tool) -> None:
        td_cls = TOOL_ARGS_MAP[tool_name]
        schema_props = set(tool.inputSchema.get("properties", {}).keys())
        schema_required = set(tool.inputSchema.get("required", []))
        assert td_cls.__optional_keys__ == schema_props - schema_required  # type: ignore[attr-defined]


@pytest.mark.parametrize(
    ("tool_name", "tool"),
    _TOOLS_WITHOUT_ARGS,
    ids=[name for name, _ in _TOOLS_WITHOUT_ARGS],
)
def test_no_arg_tool_excluded(tool_name: str, tool: Tool) -> None:
    """Tools with empty inputSchema should not have a TypedDict mapping."""
    assert tool_name not in TOOL_ARGS_MAP


def test_all_mcp_modules_covered() -> None:
    """Ensure we're scanning all mcp_tools modules."""
    mcp_dir = Path(__file__).resolve().parents[2] / "src" / "stagewise" / "mcp_tools"
    actual_modules = {f.stem for f in mcp_dir.glob("*.py") if f.stem not in ("__init__", "common")}
    scanned_modules = {m.rsplit(".", 1)[-1] for m in _MCP_MODULES}
    assert actual_modules == scanned_modules


def test_no_arg_tools_are_the_expected_ones() -> None:
    assert {name for name, _ in _TOOLS_WITHOUT_ARGS} == {"list_project_types", "list_overdue_projects"}


def test_tool_names_unique() -> None:
    names = [name for name, _ in _ALL_TOOLS]
    assert len(names) == len(set(names))
