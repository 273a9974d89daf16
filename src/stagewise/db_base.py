"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from stagewise.clock import BusinessCalendar
    from stagewise.core import Project
    from stagewise.pipeline import PipelineRegistry

CompletionStatus = Literal["completed_successfully", "completed_unsuccessfully"]
COMPLETION_STATUSES: frozenset[str] = frozenset({"completed_successfully", "completed_unsuccessfully"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_project(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by StagewiseDB at composition time.
    """

    db_path: Path
    prefix: str
    calendar: BusinessCalendar
    _conn: sqlite3.Connection | None
    _pipeline_registry: PipelineRegistry | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    @property
    def pipelines(self) -> PipelineRegistry: ...

    def get_project(self, project_id: str) -> Project: ...

    def _now(self) -> str: ...

    def _generate_unique_id(self, table: str, infix: str = "") -> str: ...

    def _record_event(
        self,
        project_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
        comment: str = "",
    ) -> None: ...
