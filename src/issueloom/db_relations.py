"""RelationsMixin: the typed relation graph between issues.

All methods access ``self.conn``, ``self._write_txn()``, etc. via Python's
MRO when composed into ``IssueloomDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from issueloom.db_base import DBMixinProtocol, NotFound, RelationConflictError, _now_iso
from issueloom.types.core import BlockingPair, RelationRefDict
from issueloom.validation import MAX_ROW_ID

if TYPE_CHECKING:
    from issueloom.core import Relation

logger = logging.getLogger(__name__)

# An active blocking edge: a ``blocks`` relation whose blocker and blocked
# issue are both unresolved. Callers append their own WHERE/ORDER clauses.
_ACTIVE_BLOCKS_SQL = (
    "SELECT r.id AS relation_id, r.target_issue_id AS blocked_id, "
    "blocked.issue_number AS blocked_issue, blocker.issue_number AS blocked_by "
    "FROM issue_relations r "
    "JOIN issues blocker ON blocker.id = r.source_issue_id "
    "JOIN issues blocked ON blocked.id = r.target_issue_id "
    "WHERE r.relation_type = 'blocks' "
    "AND blocker.status != 'resolved' AND blocked.status != 'resolved'"
)


class RelationsMixin(DBMixinProtocol):
    """Linking, unlinking, and read-time blocked queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``IssueloomDB`` at composition time via MRO.
    """

    def _issue_id(self, conn: sqlite3.Connection, issue_number: str) -> int | None:
        row = conn.execute("SELECT id FROM issues WHERE issue_number = ?", (issue_number,)).fetchone()
        return None if row is None else int(row["id"])

    # -- Mutations -----------------------------------------------------------

    def link_issues(self, source: str, target: str, relation_type: str) -> Relation | NotFound:
        """Add a directed ``source -[relation_type]-> target`` edge.

        Missing endpoints come back as ``NotFound`` (source checked first). An
        existing identical triple raises ``RelationConflictError``.
        """
        from issueloom.core import Relation

        if source == target:
            msg = f"Cannot link an issue to itself: {source}"
            raise ValueError(msg)

        now = _now_iso()
        with self._write_txn() as conn:
            source_id = self._issue_id(conn, source)
            if source_id is None:
                return NotFound("source_issue", source)
            target_id = self._issue_id(conn, target)
            if target_id is None:
                return NotFound("target_issue", target)

            existing = conn.execute(
                "SELECT 1 FROM issue_relations WHERE source_issue_id = ? AND target_issue_id = ? AND relation_type = ?",
                (source_id, target_id, relation_type),
            ).fetchone()
            if existing is not None:
                raise RelationConflictError(source, target, relation_type)

            cursor = conn.execute(
                "INSERT INTO issue_relations (source_issue_id, target_issue_id, relation_type, created_at) "
                "VALUES (?, ?, ?, ?)",
                (source_id, target_id, relation_type, now),
            )
            relation_id = cursor.lastrowid
        if relation_id is None:  # pragma: no cover
            msg = "INSERT into issue_relations did not return a row id"
            raise RuntimeError(msg)
        logger.info("Linked %s %s %s (relation %d)", source, relation_type, target, relation_id)
        return Relation(id=relation_id, source=source, target=target, relation_type=relation_type, created_at=now)

    def unlink_issues(self, relation_id: int) -> int | NotFound:
        """Delete a relation by id. Returns the deleted id."""
        if not 0 < relation_id <= MAX_ROW_ID:
            return NotFound("relation", str(relation_id))
        with self._write_txn() as conn:
            cursor = conn.execute("DELETE FROM issue_relations WHERE id = ?", (relation_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            return NotFound("relation", str(relation_id))
        logger.info("Removed relation %d", relation_id)
        return relation_id

    # -- Queries -------------------------------------------------------------

    def _relation_refs(self, issue_id: int) -> list[RelationRefDict]:
        """Relations touching *issue_id*, resolved to the issue number at the other end."""
        rows = self.conn.execute(
            "SELECT r.id, r.relation_type, "
            "CASE WHEN r.source_issue_id = ? THEN 'outgoing' ELSE 'incoming' END AS direction, "
            "CASE WHEN r.source_issue_id = ? THEN t.issue_number ELSE s.issue_number END AS related_issue "
            "FROM issue_relations r "
            "JOIN issues s ON s.id = r.source_issue_id "
            "JOIN issues t ON t.id = r.target_issue_id "
            "WHERE r.source_issue_id = ? OR r.target_issue_id = ? "
            "ORDER BY r.id",
            (issue_id, issue_id, issue_id, issue_id),
        ).fetchall()
        return [
            {
                "id": r["id"],
                "relation_type": r["relation_type"],
                "direction": r["direction"],
                "related_issue": r["related_issue"],
            }
            for r in rows
        ]

    def _blocked_by_map(self) -> dict[int, list[str]]:
        """Internal issue id -> numbers of the unresolved issues blocking it."""
        result: dict[int, list[str]] = {}
        for r in self.conn.execute(f"{_ACTIVE_BLOCKS_SQL} ORDER BY r.id").fetchall():
            result.setdefault(r["blocked_id"], []).append(r["blocked_by"])
        return result

    def blocked_by(self, issue_numbers: list[str]) -> dict[str, list[str]]:
        """Blockers for each of *issue_numbers*, in one query.

        Every requested number appears in the result; unblocked, resolved,
        and unknown issues map to an empty list.
        """
        result: dict[str, list[str]] = {n: [] for n in issue_numbers}
        if not issue_numbers:
            return result
        placeholders = ",".join("?" * len(issue_numbers))
        rows = self.conn.execute(
            f"{_ACTIVE_BLOCKS_SQL} AND blocked.issue_number IN ({placeholders}) ORDER BY r.id",
            list(issue_numbers),
        ).fetchall()
        for r in rows:
            result[r["blocked_issue"]].append(r["blocked_by"])
        return result

    def get_blocking_relations(self) -> list[BlockingPair]:
        """Every blocking edge where neither endpoint is resolved."""
        rows = self.conn.execute(f"{_ACTIVE_BLOCKS_SQL} ORDER BY r.id").fetchall()
        return [
            {"relation_id": r["relation_id"], "blocked_issue": r["blocked_issue"], "blocked_by": r["blocked_by"]}
            for r in rows
        ]
