"""MetaMixin: comments and the backlog summary.

All methods access ``self.conn``, ``self._write_txn()``, etc. via Python's
MRO when composed into ``IssueloomDB``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from issueloom.db_base import DBMixinProtocol, NotFound, _now_iso
from issueloom.types.core import (
    RecentDesignChange,
    ReviewerComment,
    StatusCount,
    SummaryDict,
    SystemCategoryCount,
)

if TYPE_CHECKING:
    from issueloom.core import Comment
    from issueloom.types.core import BlockingPair

logger = logging.getLogger(__name__)

RECENT_DESIGN_CHANGES = 5
RECENT_REVIEWER_COMMENTS = 10


class MetaMixin(DBMixinProtocol):
    """Comments and summary aggregates.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``IssueloomDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From RelationsMixin
        def get_blocking_relations(self) -> list[BlockingPair]: ...

    # -- Comments ------------------------------------------------------------

    def add_comment(self, issue_number: str, author: str, content: str) -> Comment | NotFound:
        """Append a comment and bump the parent issue's ``updated_at``, atomically."""
        from issueloom.core import Comment

        now = _now_iso()
        with self._write_txn() as conn:
            row = conn.execute("SELECT id FROM issues WHERE issue_number = ?", (issue_number,)).fetchone()
            if row is None:
                return NotFound("issue", issue_number)
            cursor = conn.execute(
                "INSERT INTO issue_comments (issue_id, author, content, created_at) VALUES (?, ?, ?, ?)",
                (row["id"], author, content, now),
            )
            conn.execute("UPDATE issues SET updated_at = ? WHERE id = ?", (now, row["id"]))
            comment_id = cursor.lastrowid
        if comment_id is None:  # pragma: no cover
            msg = "INSERT did not produce a lastrowid"
            raise RuntimeError(msg)
        logger.debug("Comment %d on %s by %s", comment_id, issue_number, author)
        return Comment(id=comment_id, issue_id=row["id"], author=author, content=content, created_at=now)

    def get_comments(self, issue_id: int) -> list[Comment]:
        from issueloom.core import Comment

        rows = self.conn.execute(
            "SELECT id, issue_id, author, content, created_at FROM issue_comments "
            "WHERE issue_id = ? ORDER BY created_at, id",
            (issue_id,),
        ).fetchall()
        return [
            Comment(
                id=r["id"],
                issue_id=r["issue_id"],
                author=r["author"],
                content=r["content"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    # -- Summary -------------------------------------------------------------

    def get_summary(self) -> SummaryDict:
        """Read-only backlog aggregates for dashboards and agent briefings."""
        total = self.conn.execute("SELECT COUNT(*) AS cnt FROM issues").fetchone()["cnt"]

        status_summary: list[StatusCount] = [
            {"status": r["status"], "count": r["cnt"]}
            for r in self.conn.execute(
                "SELECT status, COUNT(*) AS cnt FROM issues GROUP BY status ORDER BY status"
            ).fetchall()
        ]

        distribution: list[SystemCategoryCount] = [
            {"related_system": r["related_system"], "category": r["category"], "count": r["cnt"]}
            for r in self.conn.execute(
                "SELECT related_system, category, COUNT(*) AS cnt FROM issues "
                "WHERE status != 'resolved' "
                "GROUP BY related_system, category ORDER BY related_system, category"
            ).fetchall()
        ]

        design_changes: list[RecentDesignChange] = [
            {
                "issue_number": r["issue_number"],
                "title": r["title"],
                "status": r["status"],
                "updated_at": r["updated_at"],
            }
            for r in self.conn.execute(
                "SELECT issue_number, title, status, updated_at FROM issues "
                "WHERE category = 'design_change' ORDER BY updated_at DESC, id DESC LIMIT ?",
                (RECENT_DESIGN_CHANGES,),
            ).fetchall()
        ]

        reviewer_comments: list[ReviewerComment] = [
            {
                "id": r["id"],
                "content": r["content"],
                "created_at": r["created_at"],
                "author": r["author"],
                "issue_number": r["issue_number"],
                "title": r["title"],
            }
            for r in self.conn.execute(
                "SELECT c.id, c.content, c.created_at, c.author, i.issue_number, i.title "
                "FROM issue_comments c JOIN issues i ON i.id = c.issue_id "
                "WHERE c.author = ? ORDER BY c.created_at DESC, c.id DESC LIMIT ?",
                (self.reviewer_role, RECENT_REVIEWER_COMMENTS),
            ).fetchall()
        ]

        return {
            "total_issues": total,
            "status_summary": status_summary,
            "system_category_distribution": distribution,
            "recent_design_changes": design_changes,
            "recent_reviewer_comments": reviewer_comments,
            "blocked_issues": self.get_blocking_relations(),
        }
