"""Database schema definitions for the issueloom tracker.

Contains the canonical SQL schema, the category -> issue-number prefix map,
and the current schema version constant.
"""

from __future__ import annotations

CATEGORY_PREFIX: dict[str, str] = {
    "error": "ERR",
    "design_change": "DSG",
    "escalation": "ESC",
    "tech_debt": "TDB",
}

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER PRIMARY KEY,
    applied_at  TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS issues (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_number   TEXT NOT NULL UNIQUE,
    title          TEXT NOT NULL,
    description    TEXT NOT NULL,
    category       TEXT NOT NULL,
    related_system TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'open',
    priority       TEXT NOT NULL DEFAULT 'normal',
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    resolved_at    TEXT,
    created_by     TEXT NOT NULL DEFAULT 'lead_agent',
    iteration      TEXT,

    CHECK (category IN ('error', 'design_change', 'escalation', 'tech_debt')),
    CHECK (status IN ('open', 'in_progress', 'resolved', 'deferred')),
    CHECK (priority IN ('low', 'normal', 'high', 'critical')),
    CHECK ((status = 'resolved') = (resolved_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status);
CREATE INDEX IF NOT EXISTS idx_issues_category ON issues(category);
CREATE INDEX IF NOT EXISTS idx_issues_system ON issues(related_system);
CREATE INDEX IF NOT EXISTS idx_issues_updated ON issues(updated_at DESC);

CREATE TABLE IF NOT EXISTS issue_comments (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id   INTEGER NOT NULL REFERENCES issues(id),
    author     TEXT NOT NULL,
    content    TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_comments_issue ON issue_comments(issue_id, created_at);
CREATE INDEX IF NOT EXISTS idx_comments_author ON issue_comments(author, created_at DESC);

CREATE TABLE IF NOT EXISTS issue_relations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    source_issue_id INTEGER NOT NULL REFERENCES issues(id),
    target_issue_id INTEGER NOT NULL REFERENCES issues(id),
    relation_type   TEXT NOT NULL,
    created_at      TEXT NOT NULL,

    UNIQUE (source_issue_id, target_issue_id, relation_type),
    CHECK (source_issue_id != target_issue_id),
    CHECK (relation_type IN ('caused_by', 'related_to', 'blocks', 'duplicates'))
);

CREATE INDEX IF NOT EXISTS idx_relations_source ON issue_relations(source_issue_id);
CREATE INDEX IF NOT EXISTS idx_relations_target ON issue_relations(target_issue_id, relation_type);
"""

CURRENT_SCHEMA_VERSION = 1
INITIAL_SCHEMA_DESCRIPTION = "Initial schema"
