"""Request authenticity checks for the local HTTP API.

Two independent checks run before any route handler:

* the ``Host`` header must name the loopback interface, which defeats DNS
  rebinding against a server bound to 127.0.0.1;
* state-changing verbs must carry an ``X-CSRF-Token`` previously issued by
  ``GET /api/csrf-token``.

Tokens live in process memory only. They are reusable until they expire and
expired entries are pruned whenever a new token is issued.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

ALLOWED_HOSTS = frozenset({"localhost", "127.0.0.1", "[::1]"})
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_HEADER = "X-CSRF-Token"
DEFAULT_TOKEN_TTL_SECONDS = 4 * 60 * 60


def extract_hostname(host: str | None) -> str | None:
    """Strip the port from a Host header value.

    Bracketed IPv6 literals keep their brackets: ``[::1]:3000`` -> ``[::1]``.
    """
    if not host:
        return None
    if host.startswith("["):
        end = host.find("]")
        if end != -1:
            return host[: end + 1]
    colon = host.rfind(":")
    if colon > 0:
        return host[:colon]
    return host


def is_allowed_host(host: str | None) -> bool:
    hostname = extract_hostname(host)
    return hostname is not None and hostname in ALLOWED_HOSTS


def requires_token(method: str) -> bool:
    return method.upper() not in SAFE_METHODS


class CsrfTokenStore:
    """In-memory anti-forgery tokens with a fixed lifetime.

    *clock* must be monotonic; tests inject a fake one to step past expiry.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TOKEN_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tokens: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def _prune(self, now: float) -> None:
        expired = [t for t, expires_at in self._tokens.items() if now > expires_at]
        for token in expired:
            del self._tokens[token]

    def issue(self) -> str:
        with self._lock:
            now = self._clock()
            self._prune(now)
            token = secrets.token_urlsafe(32)
            self._tokens[token] = now + self.ttl_seconds
        return token

    def is_valid(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            expires_at = self._tokens.get(token)
            return expires_at is not None and self._clock() <= expires_at


def _forbidden(message: str, code: str) -> Response:
    from starlette.responses import JSONResponse

    return JSONResponse({"error": {"message": message, "code": code, "details": {}}}, status_code=403)


class GuardMiddleware(BaseHTTPMiddleware):
    """Reject foreign Host headers on every request and unauthenticated mutations."""

    def __init__(self, app: ASGIApp, *, token_store: CsrfTokenStore) -> None:
        super().__init__(app)
        self.token_store = token_store

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        host = request.headers.get("host")
        if not is_allowed_host(host):
            logger.warning("Rejected request with Host %r: %s %s", host, request.method, request.url.path)
            return _forbidden("Forbidden: invalid Host header", "FORBIDDEN_HOST")

        if requires_token(request.method) and not self.token_store.is_valid(request.headers.get(CSRF_HEADER)):
            logger.warning("Rejected %s %s: missing or unknown CSRF token", request.method, request.url.path)
            return _forbidden("Forbidden: invalid or missing CSRF token", "CSRF_INVALID")

        response: Response = await call_next(request)
        return response
