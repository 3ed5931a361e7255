"""Database schema definitions for waymark.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS work_items (
    id                    TEXT PRIMARY KEY,
    name                  TEXT NOT NULL,
    type                  TEXT NOT NULL,
    phase                 TEXT NOT NULL,
    purpose               TEXT DEFAULT '',
    fields                TEXT DEFAULT '{}',
    bug_metadata          TEXT DEFAULT '{}',
    is_enhancement        BOOLEAN NOT NULL DEFAULT 0,
    enhances_work_item_id TEXT REFERENCES work_items(id),
    version               INTEGER NOT NULL DEFAULT 1,
    version_notes         TEXT DEFAULT '',
    source_concept_id     TEXT REFERENCES work_items(id) ON DELETE SET NULL,
    rejection_reason      TEXT DEFAULT '',
    archived              BOOLEAN NOT NULL DEFAULT 0,
    review_enabled        BOOLEAN NOT NULL DEFAULT 0,
    review_status         TEXT,
    review_requested_by   TEXT DEFAULT '',
    review_requested_at   TEXT,
    review_completed_by   TEXT DEFAULT '',
    review_completed_at   TEXT,
    review_reason         TEXT DEFAULT '',
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,

    CHECK (type IN ('concept', 'feature', 'bug')),
    CHECK (version >= 1),
    CHECK (review_status IS NULL OR review_status IN ('pending', 'approved', 'rejected'))
);

CREATE INDEX IF NOT EXISTS idx_work_items_type ON work_items(type);
CREATE INDEX IF NOT EXISTS idx_work_items_phase ON work_items(type, phase);
CREATE INDEX IF NOT EXISTS idx_work_items_created ON work_items(created_at);

-- One enhancement per version and one promotion per concept.
CREATE UNIQUE INDEX IF NOT EXISTS idx_work_items_enhances
  ON work_items(enhances_work_item_id) WHERE enhances_work_item_id IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS idx_work_items_source_concept
  ON work_items(source_concept_id) WHERE source_concept_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS timeline_items (
    id           TEXT PRIMARY KEY,
    work_item_id TEXT NOT NULL REFERENCES work_items(id) ON DELETE CASCADE,
    title        TEXT NOT NULL,
    horizon      TEXT NOT NULL DEFAULT 'near_term',
    status       TEXT NOT NULL DEFAULT 'not_started',
    difficulty   TEXT NOT NULL DEFAULT 'medium',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    CHECK (horizon IN ('near_term', 'mid_term', 'long_term')),
    CHECK (status IN ('not_started', 'in_progress', 'completed', 'blocked')),
    CHECK (difficulty IN ('easy', 'medium', 'hard'))
);

CREATE INDEX IF NOT EXISTS idx_timeline_work_item ON timeline_items(work_item_id, horizon);

CREATE TABLE IF NOT EXISTS events (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    work_item_id TEXT NOT NULL REFERENCES work_items(id) ON DELETE CASCADE,
    event_type   TEXT NOT NULL,
    actor        TEXT DEFAULT '',
    old_value    TEXT,
    new_value    TEXT,
    comment      TEXT DEFAULT '',
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_work_item ON events(work_item_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);
"""

CURRENT_SCHEMA_VERSION = 1
