"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from issueloom.cli import cli
from issueloom.core import IssueloomDB
from issueloom.validation import validate_create_issue


@pytest.fixture
def cli_in_project(
    tmp_path: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize an issueloom project in tmp_path and return (runner, project_root)."""
    monkeypatch.delenv("ISSUELOOM_DB", raising=False)
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


@pytest.fixture
def seeded_project(cli_in_project: tuple[CliRunner, Path]) -> tuple[CliRunner, Path]:
    """Project with ERR-001 (open, blocked by DSG-001) and DSG-001 (in_progress)."""
    _, root = cli_in_project
    with IssueloomDB.from_project(root) as db:
        for category, title, system in (
            ("error", "Save corrupts inventory", "SaveSystem"),
            ("design_change", "Versioned save format", "save-system"),
        ):
            db.create_issue(
                validate_create_issue(
                    {
                        "title": title,
                        "description": "details",
                        "category": category,
                        "related_system": system,
                        "agent_role": "lead_agent",
                    }
                )
            )
        db.update_issue("DSG-001", {"status": "in_progress"})
        db.link_issues("DSG-001", "ERR-001", "blocks")
        db.add_comment("ERR-001", "director", "Repro attached.")
    return cli_in_project
