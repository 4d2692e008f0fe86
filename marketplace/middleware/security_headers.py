"""Response headers added to every API response."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from marketplace.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds nosniff everywhere and no-store on API responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if request.url.path.startswith(settings.API_PREFIX):
            response.headers.setdefault("Cache-Control", "no-store")
        return response
