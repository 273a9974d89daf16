"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class BusinessHoursConfig(TypedDict, total=False):
    """Shape of the ``business_hours`` section of config.json."""

    start: str
    end: str
    days: list[int]
    timezone: str


class ProjectConfig(TypedDict, total=False):
    """Shape of .stagewise/config.json."""

    prefix: str
    name: str
    version: int
    business_hours: BusinessHoursConfig


class ChronologyEntryDict(TypedDict):
    stage: str
    entered_at: ISOTimestamp


class AttachmentDict(TypedDict):
    file_name: str
    file_size: int
    file_type: str
    object_path: str


class FieldResponseDict(TypedDict):
    field_name: str
    field_type: str
    value: Any


class ProjectDict(TypedDict):
    id: str
    project_type: str
    description: str
    current_status: str
    chronology: list[ChronologyEntryDict]
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    completion_status: str | None
    completed_at: ISOTimestamp | None
    current_assignee_id: str | None
    client_manager_id: str | None
    bookkeeper_id: str | None
    role_assignments: dict[str, str]
    approval_overrides: dict[str, str]
    version: int


class TransitionRecordDict(TypedDict):
    id: str
    project_id: str
    from_stage: str
    to_stage: str
    reason_id: str
    reason: str
    notes: str
    notes_html: str
    field_responses: list[FieldResponseDict]
    approval_id: str | None
    approval_responses: list[FieldResponseDict]
    attachments: list[AttachmentDict]
    actor_id: str
    actor_role: str
    assignee_id: str | None
    minutes_in_previous_stage: int
    business_hours_in_previous_stage: float
    occurred_at: ISOTimestamp
