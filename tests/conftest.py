"""Shared pytest fixtures for stagewise tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from stagewise.authorizer import Actor
from stagewise.core import Project, StagewiseDB
from tests._db_factory import FakeClock, make_db


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path: Path, clock: FakeClock) -> Generator[StagewiseDB, None, None]:
    """Fresh StagewiseDB for each test, with built-in pipelines and a fake clock."""
    d = make_db(tmp_path, clock=clock)
    yield d
    d.close()


@pytest.fixture
def worker() -> Actor:
    return Actor("worker-1")


@pytest.fixture
def admin() -> Actor:
    return Actor("boss", "admin")


@pytest.fixture
def standard_project(db: StagewiseDB) -> Project:
    """A ``standard`` project sitting in ``intake``."""
    return db.create_project("standard", description="Quarterly close", actor="setup", client_manager_id="cm-1")


@pytest.fixture
def bookkeeping_project(db: StagewiseDB) -> Project:
    """A ``bookkeeping`` project with a client manager and bookkeeper."""
    return db.create_project(
        "bookkeeping",
        description="ACME monthly books",
        actor="setup",
        client_manager_id="cm-1",
        bookkeeper_id="bk-1",
        role_assignments={"reviewer": "rv-1"},
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
