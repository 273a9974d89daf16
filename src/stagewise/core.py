"""Core database operations for the stage transition engine.

Single source of truth for all SQLite operations. Both CLI and MCP server
import from this module. No daemon, just direct SQLite with WAL mode.

Covers project creation and completion, project reads, and the entities the
transition committer writes. Transition logic lives in db_transitions.py,
audit/event reads in db_history.py.

Convention-based discovery: each workspace has a `.stagewise/` directory
containing `stagewise.db` (SQLite), `config.json` (prefix, version, business
hours) and an optional `pipelines/` directory of project-type JSON files.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sqlite3
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stagewise.authorizer import Actor, tier_for
from stagewise.clock import BusinessCalendar, Chronology
from stagewise.db_base import COMPLETION_STATUSES, CompletionStatus, _now_iso
from stagewise.db_history import HistoryMixin
from stagewise.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from stagewise.db_transitions import TransitionsMixin, resolve_assignee
from stagewise.errors import ConcurrentModification, ConfigurationError, ProjectClosed, Unauthorized, ValidationError
from stagewise.pipeline import ELEVATED_TIER
from stagewise.responses import FieldResponse, response_to_dict
from stagewise.types.core import ProjectConfig
from stagewise.validator import Attachment

if TYPE_CHECKING:
    from stagewise.pipeline import PipelineRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

STAGEWISE_DIR_NAME = ".stagewise"
DB_FILENAME = "stagewise.db"
CONFIG_FILENAME = "config.json"
PIPELINES_DIRNAME = "pipelines"


def find_stagewise_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .stagewise/ directory.

    Returns the .stagewise/ directory path (not the workspace root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / STAGEWISE_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {STAGEWISE_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(stagewise_dir: Path) -> ProjectConfig:
    """Read .stagewise/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="sw", version=1)
    config_path = stagewise_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        result: ProjectConfig = json.loads(config_path.read_text())
        return result
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def write_config(stagewise_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .stagewise/config.json."""
    write_atomic(stagewise_dir / CONFIG_FILENAME, json.dumps(config, indent=2) + "\n")


def calendar_from_config(config: ProjectConfig) -> BusinessCalendar:
    """Business calendar from config; falls back to the default on bad values."""
    try:
        return BusinessCalendar.from_config(dict(config.get("business_hours") or {}))
    except (ConfigurationError, TypeError, ValueError) as exc:
        logger.warning("Invalid business_hours in config, using defaults: %s", exc)
        return BusinessCalendar()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Project:
    id: str
    project_type: str
    current_status: str
    description: str = ""
    chronology: Chronology = field(default_factory=Chronology)
    created_at: str = ""
    updated_at: str = ""
    completion_status: str | None = None
    completed_at: str | None = None
    current_assignee_id: str | None = None
    client_manager_id: str | None = None
    bookkeeper_id: str | None = None
    role_assignments: dict[str, str] = field(default_factory=dict)
    approval_overrides: dict[str, str] = field(default_factory=dict)
    version: int = 1

    @property
    def is_closed(self) -> bool:
        return self.completion_status is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_type": self.project_type,
            "description": self.description,
            "current_status": self.current_status,
            "chronology": self.chronology.to_list(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completion_status": self.completion_status,
            "completed_at": self.completed_at,
            "current_assignee_id": self.current_assignee_id,
            "client_manager_id": self.client_manager_id,
            "bookkeeper_id": self.bookkeeper_id,
            "role_assignments": dict(self.role_assignments),
            "approval_overrides": dict(self.approval_overrides),
            "version": self.version,
        }


@dataclass
class TransitionRecord:
    id: str
    project_id: str
    from_stage: str
    to_stage: str
    reason_id: str
    reason: str
    actor_id: str
    occurred_at: str
    notes: str = ""
    notes_html: str = ""
    actor_role: str = ""
    assignee_id: str | None = None
    approval_id: str | None = None
    field_responses: list[FieldResponse] = field(default_factory=list)
    approval_responses: list[FieldResponse] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    minutes_in_previous_stage: int = 0
    business_hours_in_previous_stage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "from_stage": self.from_stage,
            "to_stage": self.to_stage,
            "reason_id": self.reason_id,
            "reason": self.reason,
            "notes": self.notes,
            "notes_html": self.notes_html,
            "field_responses": [response_to_dict(r) for r in self.field_responses],
            "approval_id": self.approval_id,
            "approval_responses": [response_to_dict(r) for r in self.approval_responses],
            "attachments": [a.to_dict() for a in self.attachments],
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "assignee_id": self.assignee_id,
            "minutes_in_previous_stage": self.minutes_in_previous_stage,
            "business_hours_in_previous_stage": self.business_hours_in_previous_stage,
            "occurred_at": self.occurred_at,
        }


def _validate_string_map(value: object, name: str) -> dict[str, str]:
    """Raise TypeError if *value* is not a str -> str mapping."""
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        msg = f"{name} must be a mapping of strings to strings"
        raise TypeError(msg)
    return dict(value)


# ---------------------------------------------------------------------------
# StagewiseDB: the core
# ---------------------------------------------------------------------------


class StagewiseDB(TransitionsMixin, HistoryMixin):
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and MCP.

    One instance wraps one connection; use one instance per thread. Writers
    serialize on SQLite's database lock (``BEGIN IMMEDIATE``), and every
    project row carries a version number for optimistic checks.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "sw",
        pipeline_registry: PipelineRegistry | None = None,
        calendar: BusinessCalendar | None = None,
        clock: Callable[[], datetime] | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self.calendar = calendar or BusinessCalendar()
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._pipeline_registry: PipelineRegistry | None = pipeline_registry

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> StagewiseDB:
        """Create a StagewiseDB by discovering .stagewise/ from project_path (or cwd)."""
        stagewise_dir = find_stagewise_root(project_path)
        config = read_config(stagewise_dir)
        db = cls(
            stagewise_dir / DB_FILENAME,
            prefix=config.get("prefix", "sw"),
            calendar=calendar_from_config(config),
        )
        db.initialize()
        return db

    def __enter__(self) -> StagewiseDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    @property
    def pipelines(self) -> PipelineRegistry:
        """Lazy-loaded PipelineRegistry, created on first access.

        Can be overridden via constructor injection for testing.
        """
        if self._pipeline_registry is None:
            from stagewise.pipeline import PipelineRegistry

            self._pipeline_registry = PipelineRegistry()
            self._pipeline_registry.load(self.db_path.parent)
        return self._pipeline_registry

    def initialize(self) -> None:
        """Create tables for a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than this stagewise (v{CURRENT_SCHEMA_VERSION})"
            raise ValueError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _now(self) -> str:
        if self._clock is None:
            return _now_iso()
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.isoformat()

    def _generate_unique_id(self, table: str, infix: str = "") -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index.

        *table* is always a hardcoded literal at the call site (never user input).
        """
        sep = f"-{infix}-" if infix else "-"
        for _ in range(10):
            candidate = f"{self.prefix}{sep}{uuid.uuid4().hex[:10]}"
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}{sep}{uuid.uuid4().hex[:16]}"

    # -- Projects ------------------------------------------------------------

    def create_project(
        self,
        project_type: str,
        *,
        description: str = "",
        actor: str = "",
        client_manager_id: str | None = None,
        bookkeeper_id: str | None = None,
        role_assignments: dict[str, str] | None = None,
        approval_overrides: dict[str, str] | None = None,
    ) -> Project:
        """Create a project in the lowest-order stage of its type.

        Raises:
            ConfigurationError: If the project type is unknown.
            TypeError: If role_assignments/approval_overrides are not string maps.
        """
        pt = self.pipelines.require_type(project_type)
        roles = _validate_string_map(role_assignments, "role_assignments")
        overrides = _validate_string_map(approval_overrides, "approval_overrides")
        for key, approval_id in overrides.items():
            if self.pipelines.get_approval(approval_id) is None:
                msg = f"approval_overrides['{key}'] references unknown approval '{approval_id}'"
                raise ConfigurationError(msg)

        initial = pt.initial_stage
        now = self._now()
        project_id = self._generate_unique_id("projects")
        draft = Project(
            id=project_id,
            project_type=pt.type,
            current_status=initial.name,
            client_manager_id=client_manager_id,
            bookkeeper_id=bookkeeper_id,
            role_assignments=roles,
        )
        assignee = resolve_assignee(initial, draft)
        try:
            self.conn.execute(
                "INSERT INTO projects (id, project_type, description, current_status, created_at, updated_at, "
                "current_assignee_id, client_manager_id, bookkeeper_id, role_assignments, approval_overrides, version) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)",
                (
                    project_id,
                    pt.type,
                    description,
                    initial.name,
                    now,
                    now,
                    assignee,
                    client_manager_id,
                    bookkeeper_id,
                    json.dumps(roles),
                    json.dumps(overrides),
                ),
            )
            self.conn.execute(
                "INSERT INTO chronology (project_id, stage, entered_at) VALUES (?, ?, ?)",
                (project_id, initial.name, now),
            )
            self._record_event(project_id, "created", actor=actor, new_value=initial.name)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Created project %s (%s) in %s", project_id, pt.type, initial.name, extra={"project_id": project_id})
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Project:
        row = self.conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            msg = f"Project not found: {project_id}"
            raise KeyError(msg)
        return self._build_project(row)

    def _build_project(self, row: sqlite3.Row) -> Project:
        chronology = Chronology.from_rows(
            self.conn.execute(
                "SELECT stage, entered_at FROM chronology WHERE project_id = ? ORDER BY id",
                (row["id"],),
            ).fetchall()
        )
        return Project(
            id=row["id"],
            project_type=row["project_type"],
            current_status=row["current_status"],
            description=row["description"] or "",
            chronology=chronology,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completion_status=row["completion_status"],
            completed_at=row["completed_at"],
            current_assignee_id=row["current_assignee_id"],
            client_manager_id=row["client_manager_id"],
            bookkeeper_id=row["bookkeeper_id"],
            role_assignments=json.loads(row["role_assignments"] or "{}"),
            approval_overrides=json.loads(row["approval_overrides"] or "{}"),
            version=row["version"],
        )

    def list_projects(
        self,
        *,
        project_type: str | None = None,
        stage: str | None = None,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Project]:
        clauses: list[str] = []
        params: list[Any] = []
        if project_type is not None:
            clauses.append("project_type = ?")
            params.append(project_type)
        if stage is not None:
            clauses.append("current_status = ?")
            params.append(stage)
        if active_only:
            clauses.append("completion_status IS NULL")
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        rows = self.conn.execute(
            f"SELECT * FROM projects {where}ORDER BY created_at, id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [self._build_project(r) for r in rows]

    def assign_role(self, project_id: str, role: str, user_id: str | None, *, actor: str = "") -> Project:
        """Set (or with ``user_id=None`` clear) the user filling *role* on a project."""
        project = self.get_project(project_id)
        roles = dict(project.role_assignments)
        old = roles.get(role)
        if user_id:
            roles[role] = user_id
        else:
            roles.pop(role, None)
        try:
            cursor = self.conn.execute(
                "UPDATE projects SET role_assignments = ?, updated_at = ?, version = version + 1 WHERE id = ? AND version = ?",
                (json.dumps(roles), self._now(), project_id, project.version),
            )
            if cursor.rowcount == 0:
                raise ConcurrentModification(project_id, "role assignment changed concurrently")
            self._record_event(project_id, "role_assigned", actor=actor, old_value=old, new_value=user_id, comment=role)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_project(project_id)

    def complete_project(
        self,
        project_id: str,
        *,
        actor: Actor,
        completion_status: CompletionStatus = "completed_successfully",
        notes: str = "",
    ) -> Project:
        """Close a project that sits in a final stage.

        Only elevated roles, the current assignee, the client manager or the
        bookkeeper may complete a project.

        Raises:
            KeyError: Unknown project.
            ValueError: Unknown completion status.
            ProjectClosed: Already completed.
            ValidationError: Current stage is not final.
            Unauthorized: Actor may not complete this project.
            ConcurrentModification: The project changed underneath the update.
        """
        if completion_status not in COMPLETION_STATUSES:
            msg = f"Invalid completion status '{completion_status}'. Must be one of: {', '.join(sorted(COMPLETION_STATUSES))}"
            raise ValueError(msg)
        project = self.get_project(project_id)
        if project.completion_status:
            raise ProjectClosed(project_id, project.completion_status)
        pt = self.pipelines.require_type(project.project_type)
        stage = self.pipelines.require_stage(pt.type, project.current_status)
        if not stage.is_final:
            final = [s.name for s in pt.stages if s.is_final]
            msg = f"Project {project_id} is in '{stage.name}'; it can only be completed from a final stage ({', '.join(final)})"
            raise ValidationError([msg], ["current_status"])
        participants = {project.current_assignee_id, project.client_manager_id, project.bookkeeper_id} - {None}
        if tier_for(pt, actor) != ELEVATED_TIER and actor.id not in participants:
            raise Unauthorized(actor.id, stage.name, completion_status)

        now = self._now()
        try:
            cursor = self.conn.execute(
                "UPDATE projects SET completion_status = ?, completed_at = ?, updated_at = ?, version = version + 1 "
                "WHERE id = ? AND version = ? AND completion_status IS NULL",
                (completion_status, now, now, project_id, project.version),
            )
            if cursor.rowcount == 0:
                raise ConcurrentModification(project_id, "completed or changed concurrently")
            self._record_event(
                project_id, "completed", actor=actor.id, old_value=stage.name, new_value=completion_status, comment=notes
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info("Completed project %s: %s", project_id, completion_status, extra={"project_id": project_id, "actor": actor.id})
        return self.get_project(project_id)
