"""Core database operations for the issueloom tracker.

Single source of truth for all SQLite operations. The CLI, the MCP server,
and the HTTP API all import from this module. No daemon, just direct SQLite
with WAL mode.

Convention-based discovery: each project has a `.issueloom/` directory
containing `issueloom.db` (SQLite) and `config.json` (policy overrides).
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sqlite3
import sys
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypedDict

from issueloom.db_base import (
    BatchPreconditionError,
    NotFound,
    RelationConflictError,
    _now_iso,
)
from issueloom.db_issues import IssuesMixin
from issueloom.db_meta import MetaMixin
from issueloom.db_relations import RelationsMixin
from issueloom.db_schema import CURRENT_SCHEMA_VERSION, INITIAL_SCHEMA_DESCRIPTION, SCHEMA_SQL
from issueloom.types.core import CommentDict, IssueDetailDict, IssueDict, RelationDict, RelationRefDict
from issueloom.validation import DEFAULT_LIMITS, REVIEWER_ROLE, Limits

logger = logging.getLogger(__name__)

__all__ = [
    "BatchPreconditionError",
    "Comment",
    "Issue",
    "IssueDetail",
    "IssueloomDB",
    "NotFound",
    "Relation",
    "RelationConflictError",
]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

ISSUELOOM_DIR_NAME = ".issueloom"
DB_FILENAME = "issueloom.db"
CONFIG_FILENAME = "config.json"
DEFAULT_CSRF_TTL_HOURS = 4


class ProjectConfig(TypedDict, total=False):
    """Shape of .issueloom/config.json."""

    version: int
    bulk_limit: int
    reviewer_role: str
    csrf_ttl_hours: int
    limits: dict[str, int]


def find_issueloom_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .issueloom/ directory.

    Returns the .issueloom/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / ISSUELOOM_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {ISSUELOOM_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(issueloom_dir: Path) -> ProjectConfig:
    """Read .issueloom/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(version=1, reviewer_role=REVIEWER_ROLE)
    config_path = issueloom_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        loaded = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    result: ProjectConfig = {**defaults, **loaded}  # type: ignore[typeddict-item]
    return result


def write_config(issueloom_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .issueloom/config.json."""
    config_path = issueloom_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


def limits_from_config(config: ProjectConfig) -> Limits:
    """Policy limits with any config overrides applied.

    A top-level ``bulk_limit`` wins over ``limits.bulk`` when both are set.
    Unset keys keep the ``Limits`` defaults.
    """
    overrides: dict[str, Any] = dict(config.get("limits") or {})
    if "bulk_limit" in config:
        overrides["bulk"] = config["bulk_limit"]
    return Limits.from_mapping(overrides)


def validate_db_path(db_path: str | Path, root: Path | None = None) -> Path:
    """Resolve *db_path* and require it to live under *root* (default cwd).

    Symlinks are followed for the file and any of its parent directories,
    so a link pointing outside the project is rejected too, even before the
    database file exists.
    """
    lexical_root = Path(os.path.abspath(root or Path.cwd()))
    real_root = lexical_root.resolve()
    candidate = Path(db_path)
    if not candidate.is_absolute():
        candidate = lexical_root / candidate
    resolved = Path(os.path.normpath(candidate))
    if not (_is_within(resolved, lexical_root) or _is_within(resolved, real_root)):
        msg = f"DB path must be within the project directory: {lexical_root}"
        raise ValueError(msg)
    real = resolved.resolve()
    if not _is_within(real, real_root):
        msg = f"DB path resolves outside the project directory via symlink: {real}"
        raise ValueError(msg)
    return resolved


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _restrict_permissions(path: Path) -> None:
    """Owner-only access on POSIX. Failure is logged, not fatal."""
    if sys.platform == "win32":
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        logger.warning("Could not set file permissions on %s: %s", path, exc)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Issue:
    id: int
    issue_number: str
    title: str
    description: str
    category: str
    related_system: str
    status: str = "open"
    priority: str = "normal"
    created_at: str = ""
    updated_at: str = ""
    resolved_at: str | None = None
    created_by: str = "lead_agent"
    iteration: str | None = None
    # Computed at read time (not stored)
    blocked_by: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, *, blocked_by: list[str] | None = None) -> Issue:
        return cls(
            id=row["id"],
            issue_number=row["issue_number"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            related_system=row["related_system"],
            status=row["status"],
            priority=row["priority"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            resolved_at=row["resolved_at"],
            created_by=row["created_by"],
            iteration=row["iteration"],
            blocked_by=blocked_by or [],
        )

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "issue_number": self.issue_number,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "related_system": self.related_system,
            "status": self.status,
            "priority": self.priority,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "resolved_at": self.resolved_at,
            "created_by": self.created_by,
            "iteration": self.iteration,
            "blocked_by": self.blocked_by,
        }


@dataclass(frozen=True)
class Comment:
    id: int
    issue_id: int
    author: str
    content: str
    created_at: str

    def to_dict(self) -> CommentDict:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "author": self.author,
            "content": self.content,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Relation:
    id: int
    source: str
    target: str
    relation_type: str
    created_at: str

    def to_dict(self) -> RelationDict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "relation_type": self.relation_type,
            "created_at": self.created_at,
        }


@dataclass
class IssueDetail:
    issue: Issue
    comments: list[Comment] = field(default_factory=list)
    relations: list[RelationRefDict] = field(default_factory=list)

    def to_dict(self) -> IssueDetailDict:
        return {
            **self.issue.to_dict(),
            "comments": [c.to_dict() for c in self.comments],
            "relations": list(self.relations),
        }


# ---------------------------------------------------------------------------
# IssueloomDB
# ---------------------------------------------------------------------------


class IssueloomDB(IssuesMixin, RelationsMixin, MetaMixin):
    """Direct SQLite operations. No daemon. Importable by CLI, MCP, and HTTP layers."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        limits: Limits | None = None,
        reviewer_role: str = REVIEWER_ROLE,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.limits = limits or DEFAULT_LIMITS
        self.bulk_limit = self.limits.bulk
        self.reviewer_role = reviewer_role
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> IssueloomDB:
        """Create an IssueloomDB by discovering .issueloom/ from project_path (or cwd)."""
        issueloom_dir = find_issueloom_root(project_path)
        return cls.from_config_dir(issueloom_dir, check_same_thread=check_same_thread)

    @classmethod
    def from_config_dir(cls, issueloom_dir: Path, *, check_same_thread: bool = True) -> IssueloomDB:
        config = read_config(issueloom_dir)
        db = cls(
            issueloom_dir / DB_FILENAME,
            limits=limits_from_config(config),
            reviewer_role=config.get("reviewer_role", REVIEWER_ROLE),
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    def __enter__(self) -> IssueloomDB:
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

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Close and reopen the connection with a new thread-safety setting."""
        self.close()
        self._check_same_thread = check_same_thread

    @contextlib.contextmanager
    def _write_txn(self) -> Iterator[sqlite3.Connection]:
        """Run the body inside one ``BEGIN IMMEDIATE`` transaction.

        The write lock is taken before the first read, so read-then-write
        sequences (numbering, status side effects, bulk precondition checks)
        cannot interleave with another writer. Commits on success, rolls back
        on any exception.
        """
        conn = self.conn
        if conn.in_transaction:
            msg = "Write transaction requested while another transaction is open"
            raise RuntimeError(msg)
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def initialize(self) -> None:
        """Create tables if missing and record the schema version once. Idempotent."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn.executescript(SCHEMA_SQL)
        with self._write_txn() as conn:
            row = conn.execute("SELECT MAX(version) AS ver FROM schema_version").fetchone()
            if row["ver"] is None:
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at, description) VALUES (?, ?, ?)",
                    (CURRENT_SCHEMA_VERSION, _now_iso(), INITIAL_SCHEMA_DESCRIPTION),
                )
                logger.info("Initialized issueloom schema v%d at %s", CURRENT_SCHEMA_VERSION, self.db_path)
        _restrict_permissions(self.db_path)

    def get_schema_version(self) -> int:
        """Return the highest recorded schema version (0 for an uninitialized file)."""
        try:
            row = self.conn.execute("SELECT MAX(version) AS ver FROM schema_version").fetchone()
        except sqlite3.OperationalError as exc:
            if "no such table" not in str(exc):
                raise
            return 0
        return int(row["ver"] or 0)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
