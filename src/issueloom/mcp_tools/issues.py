"""MCP tools for issue CRUD, relations, and bulk updates."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from issueloom.db_base import NotFound
from issueloom.mcp_tools.common import _error, _framed, _not_found
from issueloom.validation import (
    ALLOWED_CATEGORIES,
    ALLOWED_PRIORITIES,
    ALLOWED_RELATION_TYPES,
    ALLOWED_STATUSES,
    WRITE_ROLES,
    parse_filters,
    validate_bulk_update,
    validate_create_issue,
    validate_link_issues,
    validate_unlink_issues,
    validate_update_issue,
)

_ROLE_SCHEMA = {"type": "string", "enum": list(WRITE_ROLES), "description": "Role of the calling agent"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for issue-domain tools."""
    tools = [
        Tool(
            name="create_issue",
            description=(
                "Create a new issue with automatic numbering. Returns the created issue number "
                "and the system names already in use so you can reuse them."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Issue title (max 200 chars)"},
                    "description": {"type": "string", "description": "Issue description (max 5000 chars)"},
                    "category": {"type": "string", "enum": list(ALLOWED_CATEGORIES), "description": "Issue category"},
                    "related_system": {
                        "type": "string",
                        "description": "Related system name (normalized to snake_case)",
                    },
                    "priority": {
                        "type": "string",
                        "enum": list(ALLOWED_PRIORITIES),
                        "default": "normal",
                        "description": "Issue priority",
                    },
                    "created_by": {"type": "string", "default": "lead_agent", "description": "Creator identifier"},
                    "iteration": {"type": "string", "description": "Iteration identifier"},
                    "agent_role": _ROLE_SCHEMA,
                },
                "required": ["title", "description", "category", "related_system", "agent_role"],
            },
        ),
        Tool(
            name="list_issues",
            description="List issues with optional filters, most recently updated first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {"type": "string", "enum": list(ALLOWED_STATUSES), "description": "Filter by status"},
                    "category": {"type": "string", "enum": list(ALLOWED_CATEGORIES), "description": "Filter by category"},
                    "related_system": {"type": "string", "description": "Filter by related system"},
                    "iteration": {"type": "string", "description": "Filter by iteration"},
                    "priority": {"type": "string", "enum": list(ALLOWED_PRIORITIES), "description": "Filter by priority"},
                },
            },
        ),
        Tool(
            name="get_issue",
            description="Get one issue with its comments and relations.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_number": {"type": "string", "description": 'Issue number (e.g. "ERR-001")'},
                },
                "required": ["issue_number"],
            },
        ),
        Tool(
            name="update_issue",
            description=(
                "Partially update an issue. Setting status to resolved records resolved_at; "
                "moving away from resolved clears it."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_number": {"type": "string", "description": 'Issue number (e.g. "ERR-001")'},
                    "title": {"type": "string", "description": "New title (max 200 chars)"},
                    "description": {"type": "string", "description": "New description (max 5000 chars)"},
                    "status": {"type": "string", "enum": list(ALLOWED_STATUSES), "description": "New status"},
                    "priority": {"type": "string", "enum": list(ALLOWED_PRIORITIES), "description": "New priority"},
                    "related_system": {"type": "string", "description": "New related system"},
                    "iteration": {"type": "string", "description": "New iteration"},
                    "agent_role": _ROLE_SCHEMA,
                },
                "required": ["issue_number", "agent_role"],
            },
        ),
        Tool(
            name="link_issues",
            description="Create a directed relation from source_issue to target_issue.",
            inputSchema={
                "type": "object",
                "properties": {
                    "source_issue": {"type": "string", "description": 'Source issue number (e.g. "ERR-001")'},
                    "target_issue": {"type": "string", "description": 'Target issue number (e.g. "DSG-001")'},
                    "relation_type": {
                        "type": "string",
                        "enum": list(ALLOWED_RELATION_TYPES),
                        "description": "Type of relationship",
                    },
                    "agent_role": _ROLE_SCHEMA,
                },
                "required": ["source_issue", "target_issue", "relation_type", "agent_role"],
            },
        ),
        Tool(
            name="unlink_issues",
            description="Delete a relation by its id (as shown in get_issue).",
            inputSchema={
                "type": "object",
                "properties": {
                    "relation_id": {"type": "integer", "minimum": 1, "description": "Relation id"},
                    "agent_role": _ROLE_SCHEMA,
                },
                "required": ["relation_id", "agent_role"],
            },
        ),
        Tool(
            name="bulk_update_issues",
            description=(
                "Update status and/or priority of several issues at once. All issue numbers are "
                "checked first; if any is unknown, nothing is changed."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_numbers": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": 'Issue numbers to update (e.g. ["ERR-001", "DSG-003"])',
                    },
                    "status": {"type": "string", "enum": list(ALLOWED_STATUSES), "description": "New status"},
                    "priority": {"type": "string", "enum": list(ALLOWED_PRIORITIES), "description": "New priority"},
                    "agent_role": _ROLE_SCHEMA,
                },
                "required": ["issue_numbers", "agent_role"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "create_issue": _handle_create_issue,
        "list_issues": _handle_list_issues,
        "get_issue": _handle_get_issue,
        "update_issue": _handle_update_issue,
        "link_issues": _handle_link_issues,
        "unlink_issues": _handle_unlink_issues,
        "bulk_update_issues": _handle_bulk_update_issues,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_create_issue(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    tracker = _get_db()
    try:
        data = validate_create_issue(arguments, limits=tracker.limits)
    except ValueError as e:
        return _error(str(e))
    issue_number = tracker.create_issue(data)
    return _framed(
        {
            "created": issue_number,
            "message": f"Issue {issue_number} created successfully",
            "existing_systems": tracker.distinct_systems(),
        }
    )


async def _handle_list_issues(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    try:
        filters = parse_filters(arguments)
    except ValueError as e:
        return _error(str(e))
    issues = _get_db().list_issues(filters)
    return _framed({"count": len(issues), "issues": [i.to_dict() for i in issues]})


async def _handle_get_issue(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    issue_number = arguments.get("issue_number")
    if not isinstance(issue_number, str) or not issue_number:
        return _error("issue_number is required")
    result = _get_db().get_issue(issue_number)
    if isinstance(result, NotFound):
        return _not_found(result)
    return _framed(result.to_dict())


async def _handle_update_issue(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    tracker = _get_db()
    issue_number = arguments.get("issue_number")
    if not isinstance(issue_number, str) or not issue_number:
        return _error("issue_number is required")
    try:
        data = validate_update_issue(arguments, limits=tracker.limits)
    except ValueError as e:
        return _error(str(e))
    result = tracker.update_issue(issue_number, data.changes())
    if isinstance(result, NotFound):
        return _not_found(result)
    return _framed(
        {
            "updated": issue_number,
            "message": f"Issue {issue_number} updated successfully",
            "issue": result.to_dict(),
        }
    )


async def _handle_link_issues(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    try:
        data = validate_link_issues(arguments)
        result = _get_db().link_issues(data.source_issue, data.target_issue, data.relation_type)
    except ValueError as e:
        return _error(str(e))
    if isinstance(result, NotFound):
        return _not_found(result)
    return _framed(
        {
            "message": f"Linked {data.source_issue} -> {data.relation_type} -> {data.target_issue}",
            "relation": result.to_dict(),
        }
    )


async def _handle_unlink_issues(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    try:
        data = validate_unlink_issues(arguments)
    except ValueError as e:
        return _error(str(e))
    result = _get_db().unlink_issues(data.relation_id)
    if isinstance(result, NotFound):
        return _not_found(result)
    return _framed({"message": f"Relation {result} removed", "deleted": result})


async def _handle_bulk_update_issues(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    tracker = _get_db()
    try:
        data = validate_bulk_update(arguments, limits=tracker.limits)
    except ValueError as e:
        return _error(str(e))
    if not data.changes():
        return _error("Provide at least one of status or priority")
    try:
        touched = tracker.bulk_update_issues(data.issue_numbers, data.changes())
    except ValueError as e:
        return _error(f"Validation failed: {e}. No changes were made. Please verify issue numbers and retry.")
    return _framed({"message": f"{len(touched)} issues updated successfully", "updated": touched, "count": len(touched)})
