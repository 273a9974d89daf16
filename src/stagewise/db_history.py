"""HistoryMixin: event recording and the transition audit trail.

All methods access ``self.conn``, ``self.get_project()``, etc. via
Python's MRO when composed into ``StagewiseDB``.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, cast

from stagewise.db_base import DBMixinProtocol
from stagewise.responses import from_row
from stagewise.types.events import EventRecord
from stagewise.validator import Attachment

if TYPE_CHECKING:
    from stagewise.core import TransitionRecord


class HistoryMixin(DBMixinProtocol):
    """Event log and transition audit reads for StagewiseDB.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``StagewiseDB`` at composition time.
    """

    # -- Events (private) ----------------------------------------------------

    def _record_event(
        self,
        project_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
        comment: str = "",
    ) -> None:
        self.conn.execute(
            "INSERT INTO events (project_id, event_type, actor, old_value, new_value, comment, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (project_id, event_type, actor, old_value, new_value, comment, self._now()),
        )

    # -- Events --------------------------------------------------------------

    def get_project_events(self, project_id: str, *, limit: int = 50) -> list[EventRecord]:
        """Get events for a specific project, newest first."""
        self.get_project(project_id)  # raises KeyError if not found
        rows = self.conn.execute(
            "SELECT * FROM events WHERE project_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (project_id, limit),
        ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])

    # -- Transition audit ----------------------------------------------------

    def get_transition_history(self, project_id: str) -> list[TransitionRecord]:
        """The project's transition records, oldest first."""
        self.get_project(project_id)
        rows = self.conn.execute(
            "SELECT * FROM transitions WHERE project_id = ? ORDER BY occurred_at, rowid",
            (project_id,),
        ).fetchall()
        return [self._build_transition(r) for r in rows]

    def get_transition(self, transition_id: str) -> TransitionRecord:
        row = self.conn.execute("SELECT * FROM transitions WHERE id = ?", (transition_id,)).fetchone()
        if row is None:
            msg = f"Transition not found: {transition_id}"
            raise KeyError(msg)
        return self._build_transition(row)

    def _build_transition(self, row: sqlite3.Row) -> TransitionRecord:
        from stagewise.core import TransitionRecord

        transition_id = row["id"]
        field_rows = self.conn.execute(
            "SELECT * FROM field_responses WHERE transition_id = ? ORDER BY position, id", (transition_id,)
        ).fetchall()
        approval_rows = self.conn.execute(
            "SELECT * FROM approval_responses WHERE transition_id = ? ORDER BY position, id", (transition_id,)
        ).fetchall()
        attachment_rows = self.conn.execute(
            "SELECT * FROM attachments WHERE transition_id = ? ORDER BY position, id", (transition_id,)
        ).fetchall()
        return TransitionRecord(
            id=transition_id,
            project_id=row["project_id"],
            from_stage=row["from_stage"],
            to_stage=row["to_stage"],
            reason_id=row["reason_id"],
            reason=row["reason"],
            actor_id=row["actor_id"],
            occurred_at=row["occurred_at"],
            notes=row["notes"] or "",
            notes_html=row["notes_html"] or "",
            actor_role=row["actor_role"] or "",
            assignee_id=row["assignee_id"],
            approval_id=row["approval_id"],
            field_responses=[from_row(r) for r in field_rows],
            approval_responses=[from_row(r) for r in approval_rows],
            attachments=[
                Attachment(
                    file_name=a["file_name"],
                    file_size=a["file_size"],
                    file_type=a["file_type"] or "",
                    object_path=a["object_path"],
                )
                for a in attachment_rows
            ],
            minutes_in_previous_stage=row["minutes_in_previous_stage"],
            business_hours_in_previous_stage=row["business_hours_in_previous_stage"],
        )
