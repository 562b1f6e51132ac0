"""Shared utilities, result types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from issueloom.validation import Limits

NotFoundKind = Literal["issue", "source_issue", "target_issue", "relation"]

_NOT_FOUND_LABELS: dict[str, str] = {
    "issue": "Issue",
    "source_issue": "Source issue",
    "target_issue": "Target issue",
    "relation": "Relation",
}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class NotFound:
    """An identifier that did not resolve.

    Returned (never raised) by store operations so callers can tell a missing
    record apart from a failure.
    """

    kind: NotFoundKind
    key: str

    @property
    def message(self) -> str:
        return f"{_NOT_FOUND_LABELS[self.kind]} not found: {self.key}"


class RelationConflictError(ValueError):
    """The (source, target, relation_type) triple already exists."""

    def __init__(self, source: str, target: str, relation_type: str) -> None:
        self.source = source
        self.target = target
        self.relation_type = relation_type
        super().__init__(f"Relation already exists: {source} {relation_type} {target}")


class BatchPreconditionError(ValueError):
    """A bulk operation referenced issues that do not exist. Nothing was changed."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Issues not found: {', '.join(self.missing)}")


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self._write_txn(), etc. Actual implementations are provided by
    IssueloomDB at composition time.
    """

    db_path: Path
    limits: Limits
    bulk_limit: int
    reviewer_role: str
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def _write_txn(self) -> AbstractContextManager[sqlite3.Connection]: ...
