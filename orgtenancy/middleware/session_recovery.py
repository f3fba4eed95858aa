"""
Session Recovery Middleware

A session cookie created under another domain, environment or application
key is treated as corrupt: it is flushed, given a fresh id and flagged as
recovered. Must be installed inside Starlette's SessionMiddleware.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware

from orgtenancy.config import settings
from orgtenancy.utils.crypto import key_fingerprint
from orgtenancy.utils.hosts import normalize_host

if TYPE_CHECKING:
    from collections.abc import Callable, MutableMapping

    from fastapi import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

CONTEXT_KEY = "_context"
SESSION_ID_KEY = "_session_id"
RECOVERED_KEY = "_recovered"


def new_session_id() -> str:
    return uuid.uuid4().hex


def recover_session(session: MutableMapping[str, Any], expected: dict[str, str]) -> bool:
    """
    Stamp or validate the session context.

    Returns True when the session was flushed because it was recorded under
    a different context.
    """
    recorded = session.get(CONTEXT_KEY)
    if recorded is None:
        session[CONTEXT_KEY] = expected
        session.setdefault(SESSION_ID_KEY, new_session_id())
        return False
    if recorded == expected:
        return False

    session.clear()
    session[CONTEXT_KEY] = expected
    session[SESSION_ID_KEY] = new_session_id()
    session[RECOVERED_KEY] = True
    return True


class SessionRecoveryMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, environment: str | None = None, fingerprint: str | None = None):
        super().__init__(app)
        self.environment = environment or settings.environment
        self.fingerprint = fingerprint or key_fingerprint()

    def expected_context(self, request: Request) -> dict[str, str]:
        return {
            "domain": normalize_host(request.headers.get("host", "")),
            "environment": self.environment,
            "key_fingerprint": self.fingerprint,
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.session_recovered = False
        if "session" not in request.scope:
            return await call_next(request)

        expected = self.expected_context(request)
        recorded = request.session.get(CONTEXT_KEY)
        if recover_session(request.session, expected):
            request.state.session_recovered = True
            logger.warning(
                "Incompatible session flushed and regenerated: recorded=%s current=%s path=%s",
                {k: v for k, v in recorded.items() if k != "key_fingerprint"} if isinstance(recorded, dict) else recorded,
                {k: v for k, v in expected.items() if k != "key_fingerprint"},
                request.url.path,
            )
        return await call_next(request)
