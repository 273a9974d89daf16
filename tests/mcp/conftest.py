"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from stagewise.core import STAGEWISE_DIR_NAME, StagewiseDB
from tests._db_factory import FakeClock, make_db


@pytest.fixture
def mcp_db(tmp_path: Path) -> Generator[StagewiseDB, None, None]:
    """Set up a StagewiseDB and patch the MCP module globals."""
    d = make_db(tmp_path, prefix="mcp", clock=FakeClock())

    import stagewise.mcp_server as mcp_mod

    original_db = mcp_mod.db
    original_dir = mcp_mod._stagewise_dir
    mcp_mod.db = d
    mcp_mod._stagewise_dir = tmp_path / STAGEWISE_DIR_NAME

    yield d

    mcp_mod.db = original_db
    mcp_mod._stagewise_dir = original_dir
    d.close()
