"""
Middleware for handling multi-tenancy
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

from invoicing.core.config import settings

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts tenant_id from the workspace header
    and sets it on request.state for use in endpoint handlers
    """

    # Paths that don't require tenant context
    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or any(request.url.path.startswith(path) for path in self.EXEMPT_PATHS):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get(settings.TENANT_HEADER)

        if not tenant_header:
            return Response(
                content=f'{{"ok":false,"error":"validation_error","detail":"Missing {settings.TENANT_HEADER} header"}}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            return Response(
                content=f'{{"ok":false,"error":"validation_error","detail":"Invalid {settings.TENANT_HEADER} format. Must be a valid UUID"}}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        request.state.tenant_id = tenant_id
        logger.debug(f"Request to {request.url.path} with tenant_id: {tenant_id}")

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = str(tenant_id)
        return response
