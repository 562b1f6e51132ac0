"""Shared validation functions for all entry points.

Pure functions with no MCP, FastAPI, or Click dependencies. Every write
operation has one entry function here that turns a loosely-typed argument
mapping into a closed, frozen input structure, or raises ``ValidationError``
before anything reaches the database.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

ALLOWED_CATEGORIES: tuple[str, ...] = ("error", "design_change", "escalation", "tech_debt")
ALLOWED_STATUSES: tuple[str, ...] = ("open", "in_progress", "resolved", "deferred")
ALLOWED_PRIORITIES: tuple[str, ...] = ("low", "normal", "high", "critical")
ALLOWED_RELATION_TYPES: tuple[str, ...] = ("caused_by", "related_to", "blocks", "duplicates")

WRITE_ROLES: tuple[str, ...] = ("lead_agent", "director")
REVIEWER_ROLE = "director"
DEFAULT_CREATED_BY = "lead_agent"

ISSUE_NUMBER_RE = re.compile(r"[A-Z]{3}-[0-9]{3,}")

# Largest value a SQLite INTEGER column can hold.
MAX_ROW_ID = 2**63 - 1


class ValidationError(ValueError):
    """Input rejected before any mutation. Names the field and the constraint."""

    def __init__(self, message: str, *, field: str | None = None, value: Any = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


@dataclass(frozen=True)
class Limits:
    """Policy limits. Defaults match the reference deployment."""

    title: int = 200
    description: int = 5000
    content: int = 2000
    related_system: int = 100
    author: int = 100
    iteration: int = 100
    created_by: int = 100
    bulk: int = 50

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Limits:
        """Build limits from a config mapping, ignoring unknown or non-positive values."""
        known = {f.name for f in fields(cls)}
        overrides = {
            k: v for k, v in data.items() if k in known and isinstance(v, int) and not isinstance(v, bool) and v > 0
        }
        return cls(**overrides)


DEFAULT_LIMITS = Limits()

# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------

_LITERAL_NEWLINE = "\\n"
_ESCAPED_NEWLINE = "\\\\n"


def normalize_newlines(value: Any) -> Any:
    """Turn literal ``\\n`` sequences into real line breaks.

    Agents building JSON by hand often emit a backslash + ``n`` where a line
    break was meant. A doubled backslash (``\\\\n``) is an intentional escape
    and collapses to a literal ``\\n`` instead. Doubled escapes are set aside
    before the single ones are expanded so the second pass never sees them.
    Non-strings are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    parts = value.split(_ESCAPED_NEWLINE)
    return _LITERAL_NEWLINE.join(part.replace(_LITERAL_NEWLINE, "\n") for part in parts)


_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SEPARATOR_RUN = re.compile(r"[-\s]+")
_UNDERSCORE_RUN = re.compile(r"_+")


def normalize_system_name(value: Any) -> str:
    """Canonicalize a system name to lowercase snake_case.

    ``"MonsterAI"`` -> ``"monster_ai"``, ``"procedural-map"`` -> ``"procedural_map"``,
    ``"HTTPServer"`` -> ``"http_server"``. Idempotent.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError("related_system is required and must be a string", field="related_system", value=value)
    result = value.strip()
    result = _LOWER_UPPER.sub(r"\1_\2", result)
    result = _ACRONYM_WORD.sub(r"\1_\2", result)
    result = _SEPARATOR_RUN.sub("_", result)
    result = result.lower()
    result = _UNDERSCORE_RUN.sub("_", result)
    result = result.strip("_")
    if not result:
        raise ValidationError(
            f'related_system "{value}" contains no usable characters',
            field="related_system",
            value=value,
        )
    return result


def is_issue_number(value: Any) -> bool:
    """Shape check for ``PREFIX-NNN`` identifiers (three uppercase letters, 3+ digits)."""
    return isinstance(value, str) and ISSUE_NUMBER_RE.fullmatch(value) is not None


# ---------------------------------------------------------------------------
# Primitive checks
# ---------------------------------------------------------------------------


def validate_enum(value: Any, allowed: tuple[str, ...], field: str) -> str:
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(
            f'Invalid {field}: "{value}". Allowed values: {", ".join(allowed)}',
            field=field,
            value=value,
        )
    return value


def validate_length(value: Any, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field, value=value)
    if len(value) == 0:
        raise ValidationError(f"{field} must not be empty", field=field, value=value)
    if len(value) > max_length:
        raise ValidationError(
            f"{field} exceeds maximum length of {max_length} characters (got {len(value)})",
            field=field,
            value=value,
        )
    return value


def validate_identity(value: Any, field: str, max_length: int) -> str:
    """Length check plus rejection of control/format characters (for author-like fields)."""
    validate_length(value, field, max_length)
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            raise ValidationError(
                f"{field} must not contain control characters (found U+{ord(ch):04X})",
                field=field,
                value=value,
            )
    return value


def validate_write_permission(agent_role: Any) -> str:
    if not isinstance(agent_role, str) or agent_role not in WRITE_ROLES:
        shown = agent_role if agent_role else "none"
        raise ValidationError(
            f'Write operations require one of the roles: {", ".join(WRITE_ROLES)}. Got: "{shown}"',
            field="agent_role",
            value=agent_role,
        )
    return agent_role


def _text_field(args: Mapping[str, Any], name: str, max_length: int) -> str:
    return validate_length(normalize_newlines(args.get(name)), name, max_length)


def _system_field(args: Mapping[str, Any], limits: Limits) -> str:
    return validate_length(normalize_system_name(args.get("related_system")), "related_system", limits.related_system)


# ---------------------------------------------------------------------------
# Closed input structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateIssueInput:
    agent_role: str
    title: str
    description: str
    category: str
    related_system: str
    priority: str = "normal"
    created_by: str = DEFAULT_CREATED_BY
    iteration: str | None = None


@dataclass(frozen=True)
class UpdateIssueInput:
    agent_role: str
    title: str | None = None
    description: str | None = None
    related_system: str | None = None
    status: str | None = None
    priority: str | None = None
    iteration: str | None = None

    def changes(self) -> dict[str, str]:
        """Fields the caller actually supplied, in column order."""
        candidates = {
            "title": self.title,
            "description": self.description,
            "related_system": self.related_system,
            "status": self.status,
            "priority": self.priority,
            "iteration": self.iteration,
        }
        return {k: v for k, v in candidates.items() if v is not None}


@dataclass(frozen=True)
class CommentInput:
    agent_role: str
    issue_number: str
    author: str
    content: str


@dataclass(frozen=True)
class LinkInput:
    agent_role: str
    source_issue: str
    target_issue: str
    relation_type: str


@dataclass(frozen=True)
class UnlinkInput:
    agent_role: str
    relation_id: int


@dataclass(frozen=True)
class BulkUpdateInput:
    agent_role: str
    issue_numbers: tuple[str, ...]
    status: str | None = None
    priority: str | None = None

    def changes(self) -> dict[str, str]:
        candidates = {"status": self.status, "priority": self.priority}
        return {k: v for k, v in candidates.items() if v is not None}


@dataclass(frozen=True)
class IssueFilters:
    """One optional equality filter per whitelisted column."""

    status: str | None = None
    category: str | None = None
    related_system: str | None = None
    iteration: str | None = None
    priority: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> IssueFilters:
        """Pick the whitelisted keys out of *data*. Unknown keys and empty values are dropped."""
        if not data:
            return cls()
        picked: dict[str, str] = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None or value == "":
                continue
            picked[f.name] = value
        return cls(**picked)

    def active(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


# ---------------------------------------------------------------------------
# Entry functions, one per operation
# ---------------------------------------------------------------------------


def validate_create_issue(args: Mapping[str, Any], *, limits: Limits = DEFAULT_LIMITS) -> CreateIssueInput:
    title = _text_field(args, "title", limits.title)
    description = _text_field(args, "description", limits.description)
    category = validate_enum(args.get("category"), ALLOWED_CATEGORIES, "category")
    related_system = _system_field(args, limits)
    agent_role = validate_write_permission(args.get("agent_role"))

    priority = args.get("priority")
    priority = "normal" if priority is None else validate_enum(priority, ALLOWED_PRIORITIES, "priority")

    created_by = args.get("created_by")
    created_by = DEFAULT_CREATED_BY if not created_by else validate_identity(created_by, "created_by", limits.created_by)

    iteration = args.get("iteration")
    iteration = None if iteration is None or iteration == "" else validate_length(iteration, "iteration", limits.iteration)

    return CreateIssueInput(
        agent_role=agent_role,
        title=title,
        description=description,
        category=category,
        related_system=related_system,
        priority=priority,
        created_by=created_by,
        iteration=iteration,
    )


def validate_update_issue(args: Mapping[str, Any], *, limits: Limits = DEFAULT_LIMITS) -> UpdateIssueInput:
    agent_role = validate_write_permission(args.get("agent_role"))
    return UpdateIssueInput(
        agent_role=agent_role,
        title=_text_field(args, "title", limits.title) if args.get("title") is not None else None,
        description=(
            _text_field(args, "description", limits.description) if args.get("description") is not None else None
        ),
        related_system=_system_field(args, limits) if args.get("related_system") is not None else None,
        status=validate_enum(args["status"], ALLOWED_STATUSES, "status") if args.get("status") is not None else None,
        priority=(
            validate_enum(args["priority"], ALLOWED_PRIORITIES, "priority") if args.get("priority") is not None else None
        ),
        iteration=(
            validate_length(args["iteration"], "iteration", limits.iteration) if args.get("iteration") is not None else None
        ),
    )


def validate_add_comment(args: Mapping[str, Any], *, limits: Limits = DEFAULT_LIMITS) -> CommentInput:
    agent_role = validate_write_permission(args.get("agent_role"))
    issue_number = validate_length(args.get("issue_number"), "issue_number", 32)
    content = _text_field(args, "content", limits.content)
    author = validate_identity(args.get("author"), "author", limits.author)
    return CommentInput(agent_role=agent_role, issue_number=issue_number, author=author, content=content)


def validate_link_issues(args: Mapping[str, Any]) -> LinkInput:
    agent_role = validate_write_permission(args.get("agent_role"))
    relation_type = validate_enum(args.get("relation_type"), ALLOWED_RELATION_TYPES, "relation_type")
    source = validate_length(args.get("source_issue"), "source_issue", 32)
    target = validate_length(args.get("target_issue"), "target_issue", 32)
    if source == target:
        raise ValidationError("Cannot link an issue to itself", field="target_issue", value=target)
    return LinkInput(agent_role=agent_role, source_issue=source, target_issue=target, relation_type=relation_type)


def validate_unlink_issues(args: Mapping[str, Any]) -> UnlinkInput:
    agent_role = validate_write_permission(args.get("agent_role"))
    relation_id = args.get("relation_id")
    if isinstance(relation_id, bool) or not isinstance(relation_id, int) or not 0 < relation_id <= MAX_ROW_ID:
        raise ValidationError(
            f'Invalid relation_id: "{relation_id}". Must be a positive integer',
            field="relation_id",
            value=relation_id,
        )
    return UnlinkInput(agent_role=agent_role, relation_id=relation_id)


def validate_bulk_update(args: Mapping[str, Any], *, limits: Limits = DEFAULT_LIMITS) -> BulkUpdateInput:
    agent_role = validate_write_permission(args.get("agent_role"))
    issue_numbers = args.get("issue_numbers")
    if not isinstance(issue_numbers, list | tuple) or not all(isinstance(n, str) for n in issue_numbers):
        raise ValidationError("issue_numbers must be a list of strings", field="issue_numbers", value=issue_numbers)
    if len(issue_numbers) == 0:
        raise ValidationError("issue_numbers must be a non-empty array", field="issue_numbers", value=issue_numbers)
    if len(issue_numbers) > limits.bulk:
        raise ValidationError(
            f"issue_numbers must not exceed {limits.bulk} items (got {len(issue_numbers)})",
            field="issue_numbers",
            value=len(issue_numbers),
        )
    status = args.get("status")
    priority = args.get("priority")
    return BulkUpdateInput(
        agent_role=agent_role,
        issue_numbers=tuple(issue_numbers),
        status=None if status is None else validate_enum(status, ALLOWED_STATUSES, "status"),
        priority=None if priority is None else validate_enum(priority, ALLOWED_PRIORITIES, "priority"),
    )


def parse_filters(args: Mapping[str, Any] | None) -> IssueFilters:
    """Whitelist and check list filters. ``related_system`` is canonicalized so raw names match."""
    raw = IssueFilters.from_mapping(args)
    return IssueFilters(
        status=None if raw.status is None else validate_enum(raw.status, ALLOWED_STATUSES, "status"),
        category=None if raw.category is None else validate_enum(raw.category, ALLOWED_CATEGORIES, "category"),
        related_system=None if raw.related_system is None else normalize_system_name(raw.related_system),
        iteration=None if raw.iteration is None else validate_length(raw.iteration, "iteration", DEFAULT_LIMITS.iteration),
        priority=None if raw.priority is None else validate_enum(raw.priority, ALLOWED_PRIORITIES, "priority"),
    )
