"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

import issueloom.mcp_server as mcp_mod
from issueloom.core import DB_FILENAME, ISSUELOOM_DIR_NAME, IssueloomDB, write_config


@pytest.fixture
def mcp_db(tmp_path: Path) -> Generator[IssueloomDB, None, None]:
    """Set up an IssueloomDB and patch the MCP module global."""
    issueloom_dir = tmp_path / ISSUELOOM_DIR_NAME
    issueloom_dir.mkdir()
    write_config(issueloom_dir, {"version": 1})

    d = IssueloomDB(issueloom_dir / DB_FILENAME)
    d.initialize()

    original_db = mcp_mod.db
    mcp_mod.db = d

    yield d

    mcp_mod.db = original_db
    d.close()


@pytest.fixture
def no_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """No active database, cwd set to an empty project directory."""
    monkeypatch.chdir(tmp_path)
    original_db = mcp_mod.db
    mcp_mod.db = None

    yield tmp_path

    if mcp_mod.db is not None:
        mcp_mod.db.close()
    mcp_mod.db = original_db
