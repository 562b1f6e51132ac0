"""Issue, comment, relation, and summary route handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.requests import Request

if TYPE_CHECKING:
    from fastapi import APIRouter

from issueloom.core import IssueloomDB
from issueloom.dashboard_routes.common import (
    _check_issue_number,
    _error_response,
    _not_found_response,
    _parse_json_body,
    _validation_response,
)
from issueloom.db_base import NotFound, RelationConflictError
from issueloom.guard import CsrfTokenStore
from issueloom.validation import (
    MAX_ROW_ID,
    parse_filters,
    validate_add_comment,
    validate_link_issues,
    validate_update_issue,
)

logger = logging.getLogger(__name__)

# Fields the reviewer may edit from the browser.
_PATCHABLE_FIELDS = ("title", "description", "status", "priority", "related_system", "iteration")


def create_router() -> APIRouter:
    """Build the APIRouter for the issue API.

    NOTE: All handlers are async despite doing synchronous SQLite I/O. This
    serializes DB access on the event loop thread, avoiding concurrent
    multi-thread access to the shared DB connection.
    """
    from fastapi import APIRouter, Depends
    from fastapi.responses import JSONResponse

    from issueloom.dashboard import _get_db, _get_token_store

    router = APIRouter()

    @router.get("/csrf-token")
    async def api_csrf_token(store: CsrfTokenStore = Depends(_get_token_store)) -> JSONResponse:
        return JSONResponse({"token": store.issue()})

    @router.get("/issues")
    async def api_issues(request: Request, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        try:
            filters = parse_filters(request.query_params)
        except ValueError as e:
            return _validation_response(e)
        issues = db.list_issues(filters)
        return JSONResponse({"issues": [i.to_dict() for i in issues]})

    @router.get("/issues/{issue_number}")
    async def api_issue_detail(issue_number: str, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        bad = _check_issue_number(issue_number)
        if bad is not None:
            return bad
        result = db.get_issue(issue_number)
        if isinstance(result, NotFound):
            return _not_found_response(result)
        return JSONResponse({"issue": result.to_dict()})

    @router.patch("/issues/{issue_number}")
    async def api_update_issue(issue_number: str, request: Request, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        bad = _check_issue_number(issue_number)
        if bad is not None:
            return bad
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        supplied = {k: body[k] for k in _PATCHABLE_FIELDS if k in body}
        try:
            data = validate_update_issue({**supplied, "agent_role": db.reviewer_role}, limits=db.limits)
        except ValueError as e:
            return _validation_response(e)
        changes = data.changes()
        if not changes:
            return _error_response("No valid fields to update", "VALIDATION_ERROR", 400)
        result = db.update_issue(issue_number, changes)
        if isinstance(result, NotFound):
            return _not_found_response(result)
        return JSONResponse({"issue": result.to_dict()})

    @router.post("/issues/{issue_number}/comments")
    async def api_add_comment(issue_number: str, request: Request, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        bad = _check_issue_number(issue_number)
        if bad is not None:
            return bad
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        try:
            data = validate_add_comment(
                {
                    "agent_role": db.reviewer_role,
                    "issue_number": issue_number,
                    # Browser comments always come from the reviewer.
                    "author": db.reviewer_role,
                    "content": body.get("content"),
                },
                limits=db.limits,
            )
        except ValueError as e:
            return _validation_response(e)
        result = db.add_comment(data.issue_number, data.author, data.content)
        if isinstance(result, NotFound):
            return _not_found_response(result)
        return JSONResponse({"comment": result.to_dict()}, status_code=201)

    @router.post("/issues/{issue_number}/relations")
    async def api_link_issues(issue_number: str, request: Request, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        bad = _check_issue_number(issue_number)
        if bad is not None:
            return bad
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        target = body.get("target_issue")
        bad = _check_issue_number(target, "target_issue")
        if bad is not None:
            return bad
        try:
            data = validate_link_issues(
                {
                    "agent_role": db.reviewer_role,
                    "source_issue": issue_number,
                    "target_issue": target,
                    "relation_type": body.get("relation_type"),
                }
            )
        except ValueError as e:
            return _validation_response(e)
        try:
            result = db.link_issues(data.source_issue, data.target_issue, data.relation_type)
        except RelationConflictError as e:
            return _error_response(
                str(e),
                "RELATION_CONFLICT",
                409,
                {"source": e.source, "target": e.target, "relation_type": e.relation_type},
            )
        if isinstance(result, NotFound):
            return _not_found_response(result)
        return JSONResponse({"relation": result.to_dict()}, status_code=201)

    @router.delete("/relations/{relation_id}")
    async def api_unlink_issues(relation_id: str, db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        try:
            rid = int(relation_id)
        except ValueError:
            rid = 0
        if not 0 < rid <= MAX_ROW_ID:
            return _error_response(
                f'Invalid relation_id: "{relation_id}". Must be a positive integer',
                "VALIDATION_ERROR",
                400,
                {"param": "relation_id", "value": relation_id},
            )
        result = db.unlink_issues(rid)
        if isinstance(result, NotFound):
            return _not_found_response(result)
        return JSONResponse({"deleted": result})

    @router.get("/summary")
    async def api_summary(db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse({"summary": db.get_summary()})

    @router.get("/systems")
    async def api_systems(db: IssueloomDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse({"systems": db.distinct_systems()})

    return router
