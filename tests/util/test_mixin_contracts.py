"""Structural contract tests for DB mixin TYPE_CHECKING stubs.

Every method declared in a ``TYPE_CHECKING`` block of a db_*.py mixin, and
every declaration on ``DBMixinProtocol``, must exist on the composed
StagewiseDB class and accept the parameters the stub names.
"""

from __future__ import annotations

import ast
import inspect
from pathlib import Path
from typing import NamedTuple

import pytest

from stagewise.core import StagewiseDB

_SRC_DIR = Path(__file__).resolve().parents[2] / "src" / "stagewise"

_MIXIN_FILES = ["db_transitions.py", "db_history.py"]


class _Stub(NamedTuple):
    name: str
    params: tuple[str, ...]
    is_property: bool
    source_file: str


def _is_type_checking_guard(node: ast.If) -> bool:
    if isinstance(node.test, ast.Name) and node.test.id == "TYPE_CHECKING":
        return True
    return isinstance(node.test, ast.Attribute) and node.test.attr == "TYPE_CHECKING"


def _stub(node: ast.FunctionDef | ast.AsyncFunctionDef, source_file: str) -> _Stub:
    args = node.args
    params = tuple(a.arg for a in [*args.posonlyargs, *args.args, *args.kwonlyargs] if a.arg != "self")
    is_property = any(isinstance(d, ast.Name) and d.id == "property" for d in node.decorator_list)
    return _Stub(node.name, params, is_property, source_file)


def _collect() -> list[_Stub]:
    stubs: list[_Stub] = []
    for filename in _MIXIN_FILES:
        tree = ast.parse((_SRC_DIR / filename).read_text(), filename=filename)
        for node in ast.walk(tree):
            if not isinstance(node, ast.ClassDef):
                continue
            for item in node.body:
                if isinstance(item, ast.If) and _is_type_checking_guard(item):
                    stubs.extend(_stub(f, filename) for f in item.body if isinstance(f, (ast.FunctionDef, ast.AsyncFunctionDef)))

    tree = ast.parse((_SRC_DIR / "db_base.py").read_text(), filename="db_base.py")
    for node in ast.walk(tree):
        if isinstance(node, ast.ClassDef) and any(isinstance(b, ast.Name) and b.id == "Protocol" for b in node.bases):
            stubs.extend(_stub(f, "db_base.py") for f in node.body if isinstance(f, (ast.FunctionDef, ast.AsyncFunctionDef)))
    return stubs


_ALL_STUBS = _collect()


def test_stubs_found() -> None:
    assert {s.name for s in _ALL_STUBS} >= {"get_transition", "list_projects", "get_project", "_record_event", "conn"}


@pytest.mark.parametrize("stub", _ALL_STUBS, ids=[f"{s.source_file}::{s.name}" for s in _ALL_STUBS])
def test_stub_exists_on_stagewisedb(stub: _Stub) -> None:
    assert hasattr(StagewiseDB, stub.name), f"{stub.source_file} declares '{stub.name}' but StagewiseDB has no such attribute"


@pytest.mark.parametrize("stub", _ALL_STUBS, ids=[f"{s.source_file}::{s.name}" for s in _ALL_STUBS])
def test_stub_kind_and_params(stub: _Stub) -> None:
    attr = inspect.getattr_static(StagewiseDB, stub.name)
    if stub.is_property:
        assert isinstance(attr, property)
        return
    real = inspect.signature(getattr(StagewiseDB, stub.name))
    missing = [p for p in stub.params if p not in real.parameters]
    assert not missing, f"{stub.source_file}: StagewiseDB.{stub.name} lacks parameters {missing}"
