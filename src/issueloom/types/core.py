"""Foundational TypedDicts for dataclass to_dict() returns and store aggregates."""

from __future__ import annotations

from typing import Literal, TypedDict


class IssueDict(TypedDict):
    id: int
    issue_number: str
    title: str
    description: str
    category: str
    related_system: str
    status: str
    priority: str
    created_at: str
    updated_at: str
    resolved_at: str | None
    created_by: str
    iteration: str | None
    blocked_by: list[str]


class CommentDict(TypedDict):
    id: int
    issue_id: int
    author: str
    content: str
    created_at: str


class RelationDict(TypedDict):
    id: int
    source: str
    target: str
    relation_type: str
    created_at: str


class RelationRefDict(TypedDict):
    """A relation seen from one endpoint, resolved to the partner's issue number."""

    id: int
    relation_type: str
    direction: Literal["incoming", "outgoing"]
    related_issue: str


class IssueDetailDict(IssueDict):
    comments: list[CommentDict]
    relations: list[RelationRefDict]


class SystemCategoryCount(TypedDict):
    related_system: str
    category: str
    count: int


class StatusCount(TypedDict):
    status: str
    count: int


class RecentDesignChange(TypedDict):
    issue_number: str
    title: str
    status: str
    updated_at: str


class ReviewerComment(TypedDict):
    id: int
    content: str
    created_at: str
    author: str
    issue_number: str
    title: str


class BlockingPair(TypedDict):
    relation_id: int
    blocked_issue: str
    blocked_by: str


class SummaryDict(TypedDict):
    total_issues: int
    status_summary: list[StatusCount]
    system_category_distribution: list[SystemCategoryCount]
    recent_design_changes: list[RecentDesignChange]
    recent_reviewer_comments: list[ReviewerComment]
    blocked_issues: list[BlockingPair]
