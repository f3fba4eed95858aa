"""
Domain Guard Middleware

Runs after TenantMiddleware and keeps the two halves of the application
apart:

  central host + tenant-only path  -> 404, never forwarded
  tenant host  + central-only path -> 307 to the primary central domain,
                                      path and query string preserved
                                      (404 when no central domain is set)

Requests TenantMiddleware did not resolve (exempt paths) pass through.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from orgtenancy.config import settings
from orgtenancy.exception_handlers import tenancy_error_response
from orgtenancy.exceptions import CrossDomainAccessError
from orgtenancy.utils.hosts import normalize_host

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


def path_matches(path: str, prefixes: list[str]) -> bool:
    """True when ``path`` is one of ``prefixes`` or sits below one of them."""
    for prefix in prefixes:
        prefix = prefix.rstrip("/") or "/"
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def central_url(scheme: str, central_domain: str, path: str, query: str) -> str:
    url = f"{scheme}://{central_domain}{path}"
    return f"{url}?{query}" if query else url


class DomainGuardMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        central_domains: list[str] | None = None,
        central_only_paths: list[str] | None = None,
        tenant_only_paths: list[str] | None = None,
    ):
        super().__init__(app)
        domains = settings.central_domains if central_domains is None else central_domains
        self.central_domains = [normalize_host(d) for d in domains if d]
        self.central_only_paths = settings.central_only_paths if central_only_paths is None else central_only_paths
        self.tenant_only_paths = settings.tenant_only_paths if tenant_only_paths is None else tenant_only_paths

    @property
    def primary_central_domain(self) -> str | None:
        return self.central_domains[0] if self.central_domains else None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        is_central = getattr(request.state, "is_central", None)
        if is_central is None:
            return await call_next(request)

        path = request.url.path
        host = request.headers.get("host", "")

        if is_central and path_matches(path, self.tenant_only_paths):
            logger.warning("Tenant-only route requested on central domain: host=%s path=%s", host, path)
            return tenancy_error_response(CrossDomainAccessError(path, host), path=path)

        if not is_central and path_matches(path, self.central_only_paths):
            primary = self.primary_central_domain
            if primary is None:
                logger.warning("Central-only route on tenant domain and no central domain configured: path=%s", path)
                return tenancy_error_response(CrossDomainAccessError(path, host), path=path)
            target = central_url(request.url.scheme, primary, path, request.url.query)
            logger.info("Redirecting central-only route to %s: tenant_id=%s", target, request.state.tenant_id)
            return RedirectResponse(target, status_code=307)

        return await call_next(request)
