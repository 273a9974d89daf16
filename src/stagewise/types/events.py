"""TypedDicts for db_history.py return types."""

from __future__ import annotations

from typing import TypedDict

from stagewise.types.core import ISOTimestamp


class EventRecord(TypedDict):
    """Row from the events table (SELECT * FROM events).

    Returned by ``get_project_events()``.
    """

    id: int
    project_id: str
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    comment: str
    created_at: ISOTimestamp
