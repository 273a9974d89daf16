"""Shared StagewiseDB factory for test fixtures.

Importable by any conftest.py or test file in the test suite.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from stagewise.clock import BusinessCalendar
from stagewise.core import (
    DB_FILENAME,
    PIPELINES_DIRNAME,
    STAGEWISE_DIR_NAME,
    StagewiseDB,
    write_config,
)

# A Monday, inside business hours of the default calendar.
MONDAY_9AM = datetime(2024, 3, 4, 9, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock injected into StagewiseDB so timestamps are deterministic."""

    def __init__(self, start: datetime = MONDAY_9AM) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_db(
    tmp_path: Path,
    *,
    pipelines: list[dict[str, Any]] | None = None,
    prefix: str = "test",
    clock: Callable[[], datetime] | None = None,
    calendar: BusinessCalendar | None = None,
    check_same_thread: bool = True,
) -> StagewiseDB:
    """Factory for StagewiseDB instances in tests.

    Always lays out a ``.stagewise/`` directory so the registry loads the
    same two layers production does. Each dict in *pipelines* is written to
    ``.stagewise/pipelines/<type>.json``.
    """
    stagewise_dir = tmp_path / STAGEWISE_DIR_NAME
    pipelines_dir = stagewise_dir / PIPELINES_DIRNAME
    pipelines_dir.mkdir(parents=True, exist_ok=True)
    write_config(stagewise_dir, {"prefix": prefix, "version": 1})
    for raw in pipelines or []:
        (pipelines_dir / f"{raw['type']}.json").write_text(json.dumps(raw))
    d = StagewiseDB(
        stagewise_dir / DB_FILENAME,
        prefix=prefix,
        clock=clock,
        calendar=calendar,
        check_same_thread=check_same_thread,
    )
    d.initialize()
    return d
