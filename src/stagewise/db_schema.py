"""Database schema definitions for the stagewise store.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

_VALUE_COLUMNS = """\
    field_name    TEXT NOT NULL,
    field_type    TEXT NOT NULL,
    value_number  REAL,
    value_text    TEXT,
    value_multi   TEXT,
    value_boolean INTEGER,
    position      INTEGER NOT NULL DEFAULT 0,

    CHECK ((value_number IS NOT NULL) + (value_text IS NOT NULL)
           + (value_multi IS NOT NULL) + (value_boolean IS NOT NULL) = 1),
    CHECK (field_type != 'number' OR value_number IS NOT NULL),
    CHECK (field_type NOT IN ('short_text', 'long_text') OR value_text IS NOT NULL),
    CHECK (field_type != 'short_text' OR length(value_text) <= 255),
    CHECK (field_type != 'multi_select' OR value_multi IS NOT NULL),
    CHECK (field_type != 'boolean' OR value_boolean IN (0, 1))"""


def _append_only(table: str) -> str:
    return f"""\
CREATE TRIGGER IF NOT EXISTS {table}_no_update BEFORE UPDATE ON {table} BEGIN
    SELECT RAISE(ABORT, '{table} is append-only');
END;
CREATE TRIGGER IF NOT EXISTS {table}_no_delete BEFORE DELETE ON {table} BEGIN
    SELECT RAISE(ABORT, '{table} is append-only');
END;
"""


SCHEMA_SQL = f"""\
CREATE TABLE IF NOT EXISTS projects (
    id                  TEXT PRIMARY KEY,
    project_type        TEXT NOT NULL,
    description         TEXT DEFAULT '',
    current_status      TEXT NOT NULL,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    completion_status   TEXT,
    completed_at        TEXT,
    current_assignee_id TEXT,
    client_manager_id   TEXT,
    bookkeeper_id       TEXT,
    role_assignments    TEXT NOT NULL DEFAULT '{{}}',
    approval_overrides  TEXT NOT NULL DEFAULT '{{}}',
    version             INTEGER NOT NULL DEFAULT 1,

    CHECK (completion_status IS NULL
           OR completion_status IN ('completed_successfully', 'completed_unsuccessfully')),
    CHECK ((completion_status IS NULL) = (completed_at IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_projects_type ON projects(project_type);
CREATE INDEX IF NOT EXISTS idx_projects_active ON projects(completion_status, current_status);

CREATE TABLE IF NOT EXISTS chronology (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  TEXT NOT NULL REFERENCES projects(id),
    stage       TEXT NOT NULL,
    entered_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chronology_project ON chronology(project_id, id);

CREATE TABLE IF NOT EXISTS transitions (
    id                               TEXT PRIMARY KEY,
    project_id                       TEXT NOT NULL REFERENCES projects(id),
    from_stage                       TEXT NOT NULL,
    to_stage                         TEXT NOT NULL,
    reason_id                        TEXT NOT NULL,
    reason                           TEXT NOT NULL,
    notes                            TEXT DEFAULT '',
    notes_html                       TEXT DEFAULT '',
    approval_id                      TEXT,
    actor_id                         TEXT NOT NULL,
    actor_role                       TEXT NOT NULL DEFAULT '',
    assignee_id                      TEXT,
    minutes_in_previous_stage        INTEGER NOT NULL DEFAULT 0,
    business_hours_in_previous_stage REAL NOT NULL DEFAULT 0,
    occurred_at                      TEXT NOT NULL,

    CHECK (from_stage != to_stage)
);

CREATE INDEX IF NOT EXISTS idx_transitions_project ON transitions(project_id, occurred_at);

CREATE TABLE IF NOT EXISTS field_responses (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    transition_id TEXT NOT NULL REFERENCES transitions(id),
{_VALUE_COLUMNS}
);

CREATE INDEX IF NOT EXISTS idx_field_responses_transition ON field_responses(transition_id);

CREATE TABLE IF NOT EXISTS approval_responses (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    transition_id TEXT NOT NULL REFERENCES transitions(id),
    approval_id   TEXT NOT NULL,
{_VALUE_COLUMNS}
);

CREATE INDEX IF NOT EXISTS idx_approval_responses_transition ON approval_responses(transition_id);

CREATE TABLE IF NOT EXISTS attachments (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    transition_id TEXT NOT NULL REFERENCES transitions(id),
    file_name     TEXT NOT NULL,
    file_size     INTEGER NOT NULL DEFAULT 0,
    file_type     TEXT DEFAULT '',
    object_path   TEXT NOT NULL,
    position      INTEGER NOT NULL DEFAULT 0,

    CHECK (file_size >= 0)
);

CREATE INDEX IF NOT EXISTS idx_attachments_transition ON attachments(transition_id);

CREATE TABLE IF NOT EXISTS events (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL REFERENCES projects(id),
    event_type TEXT NOT NULL,
    actor      TEXT DEFAULT '',
    old_value  TEXT,
    new_value  TEXT,
    comment    TEXT DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_project ON events(project_id, created_at DESC);

-- Audit tables never change once written.
{_append_only("chronology")}
{_append_only("transitions")}
{_append_only("field_responses")}
{_append_only("approval_responses")}
{_append_only("attachments")}
"""

CURRENT_SCHEMA_VERSION = 1
