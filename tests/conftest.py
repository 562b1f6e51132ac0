"""Shared pytest fixtures for issueloom tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from issueloom.core import DB_FILENAME, ISSUELOOM_DIR_NAME, IssueloomDB, write_config
from issueloom.validation import validate_create_issue

MakeIssue = Callable[..., str]


@pytest.fixture
def db(tmp_path: Path) -> Generator[IssueloomDB, None, None]:
    """Fresh IssueloomDB for each test."""
    d = IssueloomDB(tmp_path / "issueloom.db")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def make_issue(db: IssueloomDB) -> MakeIssue:
    """Create an issue through the validator, returning its number.

    Any create_issue argument can be overridden by keyword.
    """

    def _make(**overrides: Any) -> str:
        args: dict[str, Any] = {
            "title": "Pathfinding stalls on diagonal walls",
            "description": "Units stop moving when the target is behind a diagonal wall.",
            "category": "error",
            "related_system": "pathfinding",
            "agent_role": "lead_agent",
        }
        args.update(overrides)
        return db.create_issue(validate_create_issue(args, limits=db.limits))

    return _make


@dataclass
class PopulatedDB:
    """A populated IssueloomDB plus the issue numbers created for it."""

    db: IssueloomDB
    ids: dict[str, str]


@pytest.fixture
def populated_db(db: IssueloomDB, make_issue: MakeIssue) -> PopulatedDB:
    """IssueloomDB pre-populated with a representative issue set.

    Creates:
    - err (ERR-001, open, combat) blocked by dsg (DSG-001, in_progress, combat)
    - esc (ESC-001, resolved, monster_ai)
    - debt (TDB-001, open, procedural_map, iteration "sprint-3")
    - A director comment on err and a lead_agent comment on dsg
    """
    err = make_issue(title="Damage applied twice", category="error", related_system="CombatSystem", priority="high")
    dsg = make_issue(title="Split damage pipeline", category="design_change", related_system="combat-system")
    esc = make_issue(title="Need art direction", category="escalation", related_system="MonsterAI")
    debt = make_issue(
        title="Remove legacy map generator",
        category="tech_debt",
        related_system="procedural map",
        iteration="sprint-3",
        priority="low",
    )
    db.update_issue(dsg, {"status": "in_progress"})
    db.update_issue(esc, {"status": "resolved"})
    db.link_issues(dsg, err, "blocks")
    db.add_comment(err, "director", "Please add a regression test.")
    db.add_comment(dsg, "lead_agent", "Started on the pipeline split.")
    return PopulatedDB(db=db, ids={"err": err, "dsg": dsg, "esc": esc, "debt": debt})


@pytest.fixture
def issueloom_project(tmp_path: Path) -> Path:
    """A tmp directory set up as an issueloom project (.issueloom/ with config + db).

    Returns the project root (parent of .issueloom/).
    """
    issueloom_dir = tmp_path / ISSUELOOM_DIR_NAME
    issueloom_dir.mkdir()
    write_config(issueloom_dir, {"version": 1})

    d = IssueloomDB(issueloom_dir / DB_FILENAME)
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
