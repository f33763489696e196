"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.org_context import set_current_organization_id, clear_current_organization_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class OrganizationContextMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves the active organization and sets tenant context.

    The upstream auth layer forwards the session's active organization in
    the X-Organization-ID header. For non-public routes:
    1. Missing header -> 400 NO_ACTIVE_ORGANIZATION
    2. Sets organization_id in request.state and organization context (for RLS)
    3. Clears context after request completes
    """

    HEADER = "X-Organization-ID"

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        organization_id = request.headers.get(self.HEADER, "").strip()
        if not organization_id:
            return JSONResponse(
                status_code=400,
                content=error_response(
                    ErrorCodes.NO_ACTIVE_ORGANIZATION,
                    "No active organization",
                    request_id=getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        set_current_organization_id(organization_id)
        request.state.organization_id = organization_id

        try:
            return await call_next(request)
        finally:
            clear_current_organization_id()
