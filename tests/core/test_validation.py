"""Tests for input validation and normalization."""

from __future__ import annotations

from typing import Any

import pytest

from issueloom.validation import (
    DEFAULT_LIMITS,
    IssueFilters,
    Limits,
    ValidationError,
    is_issue_number,
    normalize_newlines,
    normalize_system_name,
    parse_filters,
    validate_add_comment,
    validate_bulk_update,
    validate_create_issue,
    validate_link_issues,
    validate_unlink_issues,
    validate_update_issue,
)


def _create_args(**overrides: Any) -> dict[str, Any]:
    args: dict[str, Any] = {
        "title": "Crash on load",
        "description": "Save file fails to parse.",
        "category": "error",
        "related_system": "SaveSystem",
        "agent_role": "lead_agent",
    }
    args.update(overrides)
    return args


class TestNormalizeSystemName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("MonsterAI", "monster_ai"),
            ("procedural-map", "procedural_map"),
            ("procedural map", "procedural_map"),
            ("HTTPServer", "http_server"),
            ("combatSystem", "combat_system"),
            ("  Save__System  ", "save_system"),
            ("ui", "ui"),
            ("Level2Loader", "level2_loader"),
            ("COMBAT_SYSTEM", "combat_system"),
        ],
    )
    def test_canonical_forms(self, raw: str, expected: str) -> None:
        assert normalize_system_name(raw) == expected

    @pytest.mark.parametrize("raw", ["MonsterAI", "procedural-map", "HTTPServer", "a_b_c"])
    def test_idempotent(self, raw: str) -> None:
        once = normalize_system_name(raw)
        assert normalize_system_name(once) == once

    @pytest.mark.parametrize("raw", ["", "---", "   ", None, 42])
    def test_rejects_unusable(self, raw: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_system_name(raw)
        assert exc_info.value.field == "related_system"


class TestNormalizeNewlines:
    def test_literal_sequence_becomes_newline(self) -> None:
        assert normalize_newlines("a\\nb") == "a\nb"

    def test_doubled_escape_kept_literal(self) -> None:
        assert normalize_newlines("path\\\\nope") == "path\\nope"

    def test_mixed(self) -> None:
        assert normalize_newlines("one\\ntwo\\\\nthree") == "one\ntwo\\nthree"

    def test_real_newlines_untouched(self) -> None:
        assert normalize_newlines("a\nb") == "a\nb"

    def test_non_string_passthrough(self) -> None:
        assert normalize_newlines(None) is None
        assert normalize_newlines(5) == 5


class TestIssueNumberShape:
    @pytest.mark.parametrize("value", ["ERR-001", "DSG-1000", "ABC-123"])
    def test_valid(self, value: str) -> None:
        assert is_issue_number(value)

    @pytest.mark.parametrize("value", ["err-001", "ERR-01", "ERRR-001", "ERR001", "ERR-001\n", " ERR-001", "", None, 1])
    def test_invalid(self, value: Any) -> None:
        assert not is_issue_number(value)


class TestCreate:
    def test_defaults(self) -> None:
        data = validate_create_issue(_create_args())
        assert data.priority == "normal"
        assert data.created_by == "lead_agent"
        assert data.iteration is None
        assert data.related_system == "save_system"

    @pytest.mark.parametrize("missing", ["title", "description", "category", "related_system", "agent_role"])
    def test_required_fields(self, missing: str) -> None:
        args = _create_args()
        del args[missing]
        with pytest.raises(ValidationError) as exc_info:
            validate_create_issue(args)
        assert exc_info.value.field == missing

    def test_title_length_limit(self) -> None:
        validate_create_issue(_create_args(title="x" * DEFAULT_LIMITS.title))
        with pytest.raises(ValidationError, match="maximum length of 200"):
            validate_create_issue(_create_args(title="x" * (DEFAULT_LIMITS.title + 1)))

    def test_custom_limits(self) -> None:
        with pytest.raises(ValidationError, match="maximum length of 10"):
            validate_create_issue(_create_args(title="x" * 11), limits=Limits(title=10))

    def test_length_checked_after_newline_expansion(self) -> None:
        title = "a\\n" * 60 + "b" * 30
        assert len(title) > DEFAULT_LIMITS.title
        data = validate_create_issue(_create_args(title=title))
        assert len(data.title) == 150

    @pytest.mark.parametrize("role", ["director", "lead_agent"])
    def test_write_roles(self, role: str) -> None:
        assert validate_create_issue(_create_args(agent_role=role)).agent_role == role

    @pytest.mark.parametrize("role", ["qa_agent", "", "Director", None])
    def test_other_roles_rejected(self, role: Any) -> None:
        with pytest.raises(ValidationError, match="Write operations require"):
            validate_create_issue(_create_args(agent_role=role))

    def test_invalid_category_lists_allowed(self) -> None:
        with pytest.raises(ValidationError, match="Allowed values: error, design_change, escalation, tech_debt"):
            validate_create_issue(_create_args(category="bug"))

    def test_created_by_control_chars_rejected(self) -> None:
        with pytest.raises(ValidationError, match="control characters"):
            validate_create_issue(_create_args(created_by="bot\x1b[31m"))


class TestUpdate:
    def test_changes_only_supplied(self) -> None:
        data = validate_update_issue({"agent_role": "director", "status": "resolved", "priority": None})
        assert data.changes() == {"status": "resolved"}

    def test_system_normalized(self) -> None:
        data = validate_update_issue({"agent_role": "director", "related_system": "MonsterAI"})
        assert data.changes() == {"related_system": "monster_ai"}

    def test_invalid_status(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_update_issue({"agent_role": "director", "status": "closed"})
        assert exc_info.value.field == "status"

    def test_role_required(self) -> None:
        with pytest.raises(ValidationError):
            validate_update_issue({"status": "open"})


class TestCommentLinkUnlink:
    def test_comment(self) -> None:
        data = validate_add_comment(
            {"agent_role": "director", "issue_number": "ERR-001", "author": "director", "content": "a\\nb"}
        )
        assert data.content == "a\nb"

    def test_comment_content_limit(self) -> None:
        with pytest.raises(ValidationError, match="content exceeds"):
            validate_add_comment(
                {"agent_role": "director", "issue_number": "ERR-001", "author": "x", "content": "y" * 2001}
            )

    def test_link_self_rejected(self) -> None:
        with pytest.raises(ValidationError, match="itself"):
            validate_link_issues(
                {"agent_role": "lead_agent", "source_issue": "ERR-001", "target_issue": "ERR-001", "relation_type": "blocks"}
            )

    def test_link_bad_type(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_link_issues(
                {"agent_role": "lead_agent", "source_issue": "ERR-001", "target_issue": "ERR-002", "relation_type": "parent"}
            )
        assert exc_info.value.field == "relation_type"

    @pytest.mark.parametrize("relation_id", [0, -1, "3", 1.5, True, None, 2**63, 2**70])
    def test_unlink_bad_id(self, relation_id: Any) -> None:
        with pytest.raises(ValidationError, match="relation_id"):
            validate_unlink_issues({"agent_role": "director", "relation_id": relation_id})


class TestBulk:
    def test_valid(self) -> None:
        data = validate_bulk_update({"agent_role": "director", "issue_numbers": ["ERR-001"], "status": "deferred"})
        assert data.issue_numbers == ("ERR-001",)
        assert data.changes() == {"status": "deferred"}

    def test_cap(self) -> None:
        numbers = [f"ERR-{n:03d}" for n in range(1, 52)]
        with pytest.raises(ValidationError, match="must not exceed 50"):
            validate_bulk_update({"agent_role": "director", "issue_numbers": numbers, "status": "open"})

    @pytest.mark.parametrize("numbers", [[], "ERR-001", [1, 2], None])
    def test_bad_lists(self, numbers: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_bulk_update({"agent_role": "director", "issue_numbers": numbers, "status": "open"})
        assert exc_info.value.field == "issue_numbers"


class TestFilters:
    def test_whitelist(self) -> None:
        assert IssueFilters.from_mapping({"status": "open", "issue_number": "ERR-001"}).active() == {"status": "open"}

    def test_empty(self) -> None:
        assert IssueFilters.from_mapping(None).active() == {}

    def test_parse_normalizes_system(self) -> None:
        assert parse_filters({"related_system": "MonsterAI"}).related_system == "monster_ai"

    def test_parse_rejects_bad_enum(self) -> None:
        with pytest.raises(ValidationError):
            parse_filters({"priority": "urgent"})
