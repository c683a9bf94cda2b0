from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Non-API prefixes that are always public (docs)
PUBLIC_PREFIXES = (
    "/docs",
    "/openapi",
    "/redoc",
)

# Protected by X-Admin-Secret instead of a user token
ADMIN_PREFIX = "/api/admin/"


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        # Allow non-API paths (health check, root)
        if not path.startswith("/api/"):
            return await call_next(request)

        if path.startswith(ADMIN_PREFIX):
            return await call_next(request)

        # All other API paths require a Bearer token
        auth_header = request.headers.get("Authorization", "")
        if auth_header.lower().startswith("bearer "):
            # Token present; the route dependency validates it
            return await call_next(request)

        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
