"""MCP tools for tracker setup, comments, the summary, and system names."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from issueloom.db_base import NotFound
from issueloom.mcp_tools.common import _error, _framed, _not_found, _text
from issueloom.validation import WRITE_ROLES, validate_add_comment


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for meta-domain tools."""
    tools = [
        Tool(
            name="init_tracker",
            description=(
                "Initialize the issue tracker database. Creates tables and indexes if they do not exist "
                "and makes it the active database for this session."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "db_path": {
                        "type": "string",
                        "description": "Path to the SQLite database file, inside the project directory",
                    },
                },
                "required": ["db_path"],
            },
        ),
        Tool(
            name="add_comment",
            description="Add a comment to an existing issue.",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_number": {"type": "string", "description": 'Issue number (e.g. "ERR-001")'},
                    "author": {"type": "string", "description": 'Comment author (e.g. "lead_agent", "director")'},
                    "content": {"type": "string", "description": "Comment content (max 2000 chars)"},
                    "agent_role": {
                        "type": "string",
                        "enum": list(WRITE_ROLES),
                        "description": "Role of the calling agent",
                    },
                },
                "required": ["issue_number", "author", "content", "agent_role"],
            },
        ),
        Tool(
            name="get_summary",
            description=(
                "Tracker overview: status counts, unresolved issues per system and category, "
                "recent design changes, recent reviewer comments, and blocking relations."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="list_systems",
            description="List the related_system names already in use.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "init_tracker": _handle_init_tracker,
        "add_comment": _handle_add_comment,
        "get_summary": _handle_get_summary,
        "list_systems": _handle_list_systems,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_init_tracker(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.core import IssueloomDB, validate_db_path
    from issueloom.mcp_server import _set_db

    raw_path = arguments.get("db_path")
    if not isinstance(raw_path, str) or not raw_path:
        return _error("db_path is required")
    try:
        db_path = validate_db_path(raw_path)
    except ValueError as e:
        return _error(str(e))
    tracker = IssueloomDB(db_path)
    tracker.initialize()
    _set_db(tracker)
    return _text(f"Issue tracker initialized at: {db_path}")


async def _handle_add_comment(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    tracker = _get_db()
    try:
        data = validate_add_comment(arguments, limits=tracker.limits)
    except ValueError as e:
        return _error(str(e))
    result = tracker.add_comment(data.issue_number, data.author, data.content)
    if isinstance(result, NotFound):
        return _not_found(result)
    return _framed({"message": f"Comment added to {data.issue_number}", "comment": result.to_dict()})


async def _handle_get_summary(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    return _framed(_get_db().get_summary())


async def _handle_list_systems(arguments: dict[str, Any]) -> list[TextContent]:
    from issueloom.mcp_server import _get_db

    return _framed({"systems": _get_db().distinct_systems()})
