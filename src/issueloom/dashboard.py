"""Local JSON API for issueloom, used by the reviewer's browser viewer.

A module-level ``_db`` is set at startup and injected via ``Depends(_get_db)``.
Every request passes ``GuardMiddleware`` first: the Host header must be a
loopback name and state-changing requests must carry a CSRF token obtained
from ``GET /api/csrf-token``.

Usage:
    issueloom viewer                    # http://localhost:3000
    issueloom viewer --port 9000        # Custom port
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from issueloom.core import DEFAULT_CSRF_TTL_HOURS, IssueloomDB, limits_from_config, read_config
from issueloom.guard import CsrfTokenStore, GuardMiddleware
from issueloom.validation import REVIEWER_ROLE

DEFAULT_PORT = 3000

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: IssueloomDB | None = None
_token_store: CsrfTokenStore = CsrfTokenStore()


def _get_db() -> IssueloomDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _get_token_store() -> CsrfTokenStore:
    return _token_store


def create_app(*, token_store: CsrfTokenStore | None = None) -> Any:
    """Create the FastAPI application with the ``/api`` routes behind the guard.

    When *token_store* is given it replaces the module-level store, so the
    middleware and ``/api/csrf-token`` always share one token map.
    """
    from fastapi import FastAPI

    from issueloom.dashboard_routes.issues import create_router

    global _token_store
    if token_store is not None:
        _token_store = token_store

    app = FastAPI(title="issueloom", docs_url=None, redoc_url=None, openapi_url=None)
    app.include_router(create_router(), prefix="/api")
    app.add_middleware(GuardMiddleware, token_store=_token_store)
    return app


def main(db_path: Path, port: int = DEFAULT_PORT) -> None:
    """Serve the API on 127.0.0.1 until interrupted."""
    import uvicorn

    from issueloom.logging import setup_logging

    global _db

    issueloom_dir = db_path.parent
    config = read_config(issueloom_dir)
    _db = IssueloomDB(
        db_path,
        limits=limits_from_config(config),
        reviewer_role=config.get("reviewer_role", REVIEWER_ROLE),
        check_same_thread=False,
    )
    _db.initialize()
    setup_logging(issueloom_dir)

    ttl_hours = config.get("csrf_ttl_hours", DEFAULT_CSRF_TTL_HOURS)
    app = create_app(token_store=CsrfTokenStore(ttl_seconds=ttl_hours * 60 * 60))

    logger.info("Viewer API listening on 127.0.0.1:%d (db=%s)", port, db_path)
    print(f"issueloom viewer: http://localhost:{port}/api/")
    try:
        uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
    finally:
        _db.close()
        _db = None
