"""IssuesMixin: issue numbering, CRUD, filtered listing, and bulk updates.

All methods access ``self.conn``, ``self._write_txn()``, etc. via Python's
MRO when composed into ``IssueloomDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from issueloom.db_base import BatchPreconditionError, DBMixinProtocol, NotFound, _now_iso
from issueloom.db_schema import CATEGORY_PREFIX
from issueloom.validation import ValidationError

if TYPE_CHECKING:
    from issueloom.core import Comment, Issue, IssueDetail
    from issueloom.types.core import RelationRefDict
    from issueloom.validation import CreateIssueInput, IssueFilters

logger = logging.getLogger(__name__)

_ISSUE_COLUMNS = (
    "id, issue_number, title, description, category, related_system, status, priority, "
    "created_at, updated_at, resolved_at, created_by, iteration"
)

# Column name -> SQL fragment. Keys are the only columns callers may touch;
# the fragments are literals, never built from input.
_FILTER_SQL: dict[str, str] = {
    "status": "status = ?",
    "category": "category = ?",
    "related_system": "related_system = ?",
    "iteration": "iteration = ?",
    "priority": "priority = ?",
}
_UPDATABLE_SQL: dict[str, str] = {
    "title": "title = ?",
    "description": "description = ?",
    "related_system": "related_system = ?",
    "status": "status = ?",
    "priority": "priority = ?",
    "iteration": "iteration = ?",
}
_BULK_UPDATABLE = frozenset({"status", "priority"})

_MIN_NUMBER_WIDTH = 3


def format_issue_number(prefix: str, number: int) -> str:
    return f"{prefix}-{number:0{_MIN_NUMBER_WIDTH}d}"


def _status_side_effects(old_status: str, new_status: str, now: str) -> list[tuple[str, Any]]:
    """resolved_at follows status: set on entering ``resolved``, cleared on leaving it."""
    if new_status == old_status:
        return []
    if new_status == "resolved":
        return [("resolved_at = ?", now)]
    if old_status == "resolved":
        return [("resolved_at = ?", None)]
    return []


class IssuesMixin(DBMixinProtocol):
    """Issue numbering, CRUD, listing, and bulk updates.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``IssueloomDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From RelationsMixin
        def _blocked_by_map(self) -> dict[int, list[str]]: ...
        def _relation_refs(self, issue_id: int) -> list[RelationRefDict]: ...

        # From MetaMixin
        def get_comments(self, issue_id: int) -> list[Comment]: ...

    # -- Numbering -----------------------------------------------------------

    def _next_issue_number(self, conn: sqlite3.Connection, prefix: str) -> str:
        """Next number for *prefix*. Caller must hold the write lock.

        Suffixes are compared as integers so ``ERR-1000`` sorts after ``ERR-999``.
        """
        row = conn.execute(
            "SELECT MAX(CAST(SUBSTR(issue_number, ?) AS INTEGER)) AS num FROM issues WHERE issue_number LIKE ?",
            (len(prefix) + 2, f"{prefix}-%"),
        ).fetchone()
        return format_issue_number(prefix, (row["num"] or 0) + 1)

    # -- Issue CRUD ----------------------------------------------------------

    def create_issue(self, data: CreateIssueInput) -> str:
        """Insert a validated issue and return its newly assigned issue number."""
        prefix = CATEGORY_PREFIX.get(data.category)
        if prefix is None:
            msg = f"Unknown category '{data.category}'. Valid categories: {', '.join(CATEGORY_PREFIX)}"
            raise ValueError(msg)

        now = _now_iso()
        with self._write_txn() as conn:
            issue_number = self._next_issue_number(conn, prefix)
            conn.execute(
                "INSERT INTO issues (issue_number, title, description, category, related_system, status, "
                "priority, created_at, updated_at, created_by, iteration) "
                "VALUES (?, ?, ?, ?, ?, 'open', ?, ?, ?, ?, ?)",
                (
                    issue_number,
                    data.title,
                    data.description,
                    data.category,
                    data.related_system,
                    data.priority,
                    now,
                    now,
                    data.created_by,
                    data.iteration,
                ),
            )
        logger.info("Created %s (%s/%s) by %s", issue_number, data.category, data.related_system, data.created_by)
        return issue_number

    def _issue_row(self, issue_number: str) -> sqlite3.Row | None:
        row: sqlite3.Row | None = self.conn.execute(
            f"SELECT {_ISSUE_COLUMNS} FROM issues WHERE issue_number = ?", (issue_number,)
        ).fetchone()
        return row

    def _build_issue(self, row: sqlite3.Row) -> Issue:
        from issueloom.core import Issue

        return Issue.from_row(row, blocked_by=self._blocked_by_map().get(row["id"], []))

    def list_issues(self, filters: IssueFilters | None = None) -> list[Issue]:
        """Issues matching *filters*, most recently updated first, with ``blocked_by`` filled in."""
        from issueloom.core import Issue

        conditions: list[str] = []
        params: list[Any] = []
        if filters is not None:
            for column, value in filters.active().items():
                fragment = _FILTER_SQL.get(column)
                if fragment is None:
                    continue
                conditions.append(fragment)
                params.append(value)

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.conn.execute(
            f"SELECT {_ISSUE_COLUMNS} FROM issues{where} ORDER BY updated_at DESC, id DESC",
            params,
        ).fetchall()

        blocked = self._blocked_by_map()
        return [Issue.from_row(r, blocked_by=blocked.get(r["id"], [])) for r in rows]

    def get_issue(self, issue_number: str) -> IssueDetail | NotFound:
        """Issue with its comments (oldest first) and relations in both directions."""
        from issueloom.core import IssueDetail

        row = self._issue_row(issue_number)
        if row is None:
            return NotFound("issue", issue_number)
        return IssueDetail(
            issue=self._build_issue(row),
            comments=self.get_comments(row["id"]),
            relations=self._relation_refs(row["id"]),
        )

    def update_issue(self, issue_number: str, updates: dict[str, Any]) -> Issue | NotFound:
        """Apply a partial update.

        Keys outside the updatable whitelist and values equal to the current
        ones are ignored. If nothing is left the issue is returned unchanged
        and ``updated_at`` is not touched.
        """
        now = _now_iso()
        with self._write_txn():
            row = self._issue_row(issue_number)
            if row is None:
                return NotFound("issue", issue_number)

            clauses: list[tuple[str, Any]] = [
                (_UPDATABLE_SQL[k], v) for k, v in updates.items() if k in _UPDATABLE_SQL and v is not None and v != row[k]
            ]
            if not clauses:
                return self._build_issue(row)

            if "status" in updates and updates["status"] is not None:
                clauses.extend(_status_side_effects(row["status"], updates["status"], now))
            clauses.append(("updated_at = ?", now))

            sql = f"UPDATE issues SET {', '.join(c for c, _ in clauses)} WHERE id = ?"
            self.conn.execute(sql, [v for _, v in clauses] + [row["id"]])
            updated = self._issue_row(issue_number)
            if updated is None:  # pragma: no cover
                return NotFound("issue", issue_number)
        logger.debug("Updated %s: %s", issue_number, sorted(k for k in updates if k in _UPDATABLE_SQL))
        return self._build_issue(updated)

    def bulk_update_issues(self, issue_numbers: list[str] | tuple[str, ...], updates: dict[str, Any]) -> list[str]:
        """Apply the same status/priority change to many issues, all or nothing.

        Every number must resolve before anything is written; otherwise
        ``BatchPreconditionError`` lists all missing numbers and no row changes.
        Issues whose values already match are skipped. Returns the numbers
        actually touched.
        """
        if not isinstance(issue_numbers, list | tuple) or not all(isinstance(n, str) for n in issue_numbers):
            msg = "issue_numbers must be a list of strings"
            raise TypeError(msg)
        if not issue_numbers:
            raise ValidationError("issue_numbers must be a non-empty array", field="issue_numbers")
        if len(issue_numbers) > self.bulk_limit:
            raise ValidationError(
                f"issue_numbers must not exceed {self.bulk_limit} items (got {len(issue_numbers)})",
                field="issue_numbers",
                value=len(issue_numbers),
            )

        changes = {k: v for k, v in updates.items() if k in _BULK_UPDATABLE and v is not None}
        now = _now_iso()
        touched: list[str] = []
        with self._write_txn() as conn:
            placeholders = ",".join("?" * len(issue_numbers))
            rows_by_number: dict[str, sqlite3.Row] = {
                r["issue_number"]: r
                for r in conn.execute(
                    f"SELECT id, issue_number, status, priority FROM issues WHERE issue_number IN ({placeholders})",
                    list(issue_numbers),
                ).fetchall()
            }
            missing = list(dict.fromkeys(n for n in issue_numbers if n not in rows_by_number))
            if missing:
                logger.info("Bulk update rejected: %d unknown issue(s): %s", len(missing), ", ".join(missing))
                raise BatchPreconditionError(missing)

            for number in dict.fromkeys(issue_numbers):
                row = rows_by_number[number]
                clauses = [(_UPDATABLE_SQL[k], v) for k, v in changes.items() if v != row[k]]
                if not clauses:
                    continue
                if "status" in changes:
                    clauses.extend(_status_side_effects(row["status"], changes["status"], now))
                clauses.append(("updated_at = ?", now))
                conn.execute(
                    f"UPDATE issues SET {', '.join(c for c, _ in clauses)} WHERE id = ?",
                    [v for _, v in clauses] + [row["id"]],
                )
                touched.append(number)
        logger.info("Bulk update touched %d of %d issue(s)", len(touched), len(issue_numbers))
        return touched

    def distinct_systems(self) -> list[str]:
        """Every related_system value in use, sorted."""
        rows = self.conn.execute("SELECT DISTINCT related_system FROM issues ORDER BY related_system").fetchall()
        return [r["related_system"] for r in rows]
