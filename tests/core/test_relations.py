"""Tests for the relation graph: linking, unlinking, and blocked-by queries."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from issueloom.core import Issue, IssueDetail, IssueloomDB, Relation
from issueloom.db_base import NotFound, RelationConflictError

MakeIssue = Callable[..., str]


def _blocked_by(db: IssueloomDB, number: str) -> list[str]:
    detail = db.get_issue(number)
    assert isinstance(detail, IssueDetail)
    return detail.issue.blocked_by


class TestLink:
    def test_link_returns_relation(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        rel = db.link_issues(a, b, "caused_by")
        assert isinstance(rel, Relation)
        assert (rel.source, rel.target, rel.relation_type) == (a, b, "caused_by")
        assert rel.id > 0

    def test_missing_source_reported_first(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        make_issue()
        assert db.link_issues("ERR-404", "ERR-405", "blocks") == NotFound("source_issue", "ERR-404")

    def test_missing_target(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a = make_issue()
        result = db.link_issues(a, "DSG-404", "blocks")
        assert result == NotFound("target_issue", "DSG-404")
        assert isinstance(result, NotFound)
        assert result.message == "Target issue not found: DSG-404"

    def test_self_link_rejected(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a = make_issue()
        with pytest.raises(ValueError, match="itself"):
            db.link_issues(a, a, "related_to")

    def test_duplicate_triple_conflicts(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        db.link_issues(a, b, "blocks")
        with pytest.raises(RelationConflictError) as exc_info:
            db.link_issues(a, b, "blocks")
        assert exc_info.value.relation_type == "blocks"
        assert db.conn.execute("SELECT COUNT(*) FROM issue_relations").fetchone()[0] == 1

    def test_same_pair_different_type_allowed(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        assert isinstance(db.link_issues(a, b, "blocks"), Relation)
        assert isinstance(db.link_issues(a, b, "related_to"), Relation)
        assert isinstance(db.link_issues(b, a, "blocks"), Relation)


class TestUnlink:
    def test_unlink_deletes(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        rel = db.link_issues(a, b, "blocks")
        assert isinstance(rel, Relation)
        assert db.unlink_issues(rel.id) == rel.id
        assert _blocked_by(db, b) == []

    def test_unlink_twice_is_not_found(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        rel = db.link_issues(a, b, "duplicates")
        assert isinstance(rel, Relation)
        db.unlink_issues(rel.id)
        assert db.unlink_issues(rel.id) == NotFound("relation", str(rel.id))

    @pytest.mark.parametrize("relation_id", [0, 2**63, 2**70])
    def test_unlink_out_of_range_is_not_found(self, db: IssueloomDB, relation_id: int) -> None:
        assert db.unlink_issues(relation_id) == NotFound("relation", str(relation_id))


class TestBlockedBy:
    def test_only_blocks_relations_count(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b = make_issue(), make_issue()
        db.link_issues(a, b, "related_to")
        db.link_issues(a, b, "caused_by")
        assert _blocked_by(db, b) == []

    def test_blocker_listed_on_target_only(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocker, blocked = make_issue(), make_issue()
        db.link_issues(blocker, blocked, "blocks")
        assert _blocked_by(db, blocked) == [blocker]
        assert _blocked_by(db, blocker) == []

    def test_resolving_blocker_unblocks(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocker, blocked = make_issue(), make_issue()
        db.link_issues(blocker, blocked, "blocks")
        db.update_issue(blocker, {"status": "resolved"})
        assert _blocked_by(db, blocked) == []

    def test_reopening_blocker_blocks_again(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocker, blocked = make_issue(), make_issue()
        db.link_issues(blocker, blocked, "blocks")
        db.update_issue(blocker, {"status": "resolved"})
        db.update_issue(blocker, {"status": "open"})
        assert _blocked_by(db, blocked) == [blocker]

    def test_resolved_issue_reports_no_blockers(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocker, blocked = make_issue(), make_issue()
        db.link_issues(blocker, blocked, "blocks")
        resolved = db.update_issue(blocked, {"status": "resolved"})
        assert isinstance(resolved, Issue)
        assert resolved.blocked_by == []

    def test_multiple_blockers_in_link_order(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocked = make_issue()
        first = make_issue(category="design_change")
        second = make_issue(category="tech_debt")
        db.link_issues(second, blocked, "blocks")
        db.link_issues(first, blocked, "blocks")
        assert _blocked_by(db, blocked) == [second, first]

    def test_batch_lookup_covers_every_key(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        blocker, blocked, free = make_issue(), make_issue(), make_issue()
        db.link_issues(blocker, blocked, "blocks")
        assert db.blocked_by([blocked, free, "ERR-404"]) == {blocked: [blocker], free: [], "ERR-404": []}

    def test_batch_lookup_empty(self, db: IssueloomDB) -> None:
        assert db.blocked_by([]) == {}

    def test_blocking_relations_list(self, db: IssueloomDB, make_issue: MakeIssue) -> None:
        a, b, c = make_issue(), make_issue(), make_issue()
        rel = db.link_issues(a, b, "blocks")
        db.link_issues(c, b, "blocks")
        db.update_issue(c, {"status": "resolved"})
        assert isinstance(rel, Relation)
        assert db.get_blocking_relations() == [{"relation_id": rel.id, "blocked_issue": b, "blocked_by": a}]
