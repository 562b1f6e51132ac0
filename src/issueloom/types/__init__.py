# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin (circular imports).
"""Typed return-value contracts for issueloom core and API layers."""

from __future__ import annotations

from issueloom.types.core import (
    BlockingPair,
    CommentDict,
    IssueDetailDict,
    IssueDict,
    RelationDict,
    RelationRefDict,
    ReviewerComment,
    SummaryDict,
)

__all__ = [
    "BlockingPair",
    "CommentDict",
    "IssueDetailDict",
    "IssueDict",
    "RelationDict",
    "RelationRefDict",
    "ReviewerComment",
    "SummaryDict",
]
