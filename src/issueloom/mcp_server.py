"""MCP server for the issueloom tracker.

Primary interface for agents. Direct SQLite, no daemon.
Exposes issueloom operations as MCP tools over stdio.

Usage:
    issueloom-mcp                              # Auto-discover .issueloom/ from cwd
    issueloom-mcp --project /path/to/project   # Explicit project root
    issueloom-mcp --db data/issues.db          # Explicit database file (inside cwd)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from issueloom.core import (
    ISSUELOOM_DIR_NAME,
    IssueloomDB,
    find_issueloom_root,
    validate_db_path,
)
from issueloom.mcp_tools import issues as _issue_tools
from issueloom.mcp_tools import meta as _meta_tools
from issueloom.mcp_tools.common import _error

server = Server("issueloom")
db: IssueloomDB | None = None
_logger: logging.Logger | None = None

_TOOLS: list[Tool] = []
_HANDLERS: dict[str, Callable[..., Any]] = {}
for _module in (_meta_tools, _issue_tools):
    _module_tools, _module_handlers = _module.register()
    _TOOLS.extend(_module_tools)
    _HANDLERS.update(_module_handlers)

# Tools that work before any database is attached.
_NO_DB_TOOLS = frozenset({"init_tracker"})


def _get_db() -> IssueloomDB:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


def _set_db(tracker: IssueloomDB) -> None:
    """Make *tracker* the active database, closing the previous one."""
    global db
    previous = db
    db = tracker
    if previous is not None and previous is not tracker:
        previous.close()


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    handler = _HANDLERS.get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}")
    if db is None and name not in _NO_DB_TOOLS:
        return _error("Tracker not initialized. Call init_tracker first.")

    t0 = time.monotonic()
    try:
        result: list[TextContent] = await handler(arguments or {})
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    else:
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        if _logger:
            _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
        return result
    finally:
        # Safety net: a failed mutation must not leave an open transaction
        # for the next tool call to inherit.
        if db is not None and db.conn.in_transaction:
            db.conn.rollback()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _open_db(project_path: Path | None, db_path: str | None) -> IssueloomDB | None:
    """Resolve the startup database. ``None`` means wait for init_tracker."""
    if db_path:
        tracker = IssueloomDB(validate_db_path(db_path))
        tracker.initialize()
        return tracker

    if project_path:
        issueloom_dir = project_path / ISSUELOOM_DIR_NAME
        if not issueloom_dir.is_dir():
            print(f"Error: {issueloom_dir} not found. Run 'issueloom init' first.", file=sys.stderr)
            sys.exit(1)
        return IssueloomDB.from_config_dir(issueloom_dir)

    try:
        return IssueloomDB.from_config_dir(find_issueloom_root())
    except FileNotFoundError:
        return None


async def _run(project_path: Path | None, db_path: str | None) -> None:
    global _logger

    try:
        tracker = _open_db(project_path, db_path)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    from issueloom.logging import setup_logging

    if tracker is not None:
        _set_db(tracker)
        _logger = setup_logging(tracker.db_path.parent)
        _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"db": str(tracker.db_path)}})
    else:
        _logger = setup_logging(Path.cwd() / ISSUELOOM_DIR_NAME)
        _logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"db": None}})

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="issueloom MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .issueloom/ if omitted)")
    parser.add_argument("--db", default=None, help="Database file, relative to the current directory")
    args = parser.parse_args(argv)

    asyncio.run(_run(args.project, args.db))


if __name__ == "__main__":
    main()
