"""
Security middleware for FastAPI:
- Security headers (CSP, X-Frame-Options, etc.)
- CORS hardening with an origin allow-list
- Per-IP fixed-window rate limiting
- Upload body cap
- Unhandled error rendering
- Request logging
"""

import time
from typing import List, Optional, Tuple

from fastapi import Request
from loguru import logger
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from auth.cache_manager import InMemoryCacheManager


def client_ip(request: Request, trust_proxy: bool = False) -> str:
    """Caller IP; with ``trust_proxy`` the first X-Forwarded-For hop wins."""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers added:
    - X-Frame-Options
    - X-Content-Type-Options
    - Content-Security-Policy
    - Referrer-Policy
    - Cross-Origin-Resource-Policy
    - Strict-Transport-Security (production only)
    """

    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"

        csp = (
            "default-src 'self'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none'; "
            "base-uri 'self'; "
            "form-action 'self';"
        )
        response.headers["Content-Security-Policy"] = csp

        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class CORSHardeningMiddleware(BaseHTTPMiddleware):
    """
    Origin allow-list.
    Requests without an Origin header (same-origin, curl, server-to-server)
    pass through; a foreign origin is refused with 403.
    """

    ALLOW_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    ALLOW_HEADERS = "Content-Type, Authorization"

    def __init__(self, app, allowed_origins: Optional[List[str]] = None):
        super().__init__(app)
        self.allowed_origins = set(allowed_origins or [])

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")

        if origin and origin not in self.allowed_origins:
            logger.warning(f"[CORS] Rejected origin {origin} for {request.method} {request.url.path}")
            return JSONResponse(status_code=403, content={"error": "Origin not allowed by CORS"})

        if request.method == "OPTIONS" and origin:
            return Response(
                status_code=204,
                headers={
                    "Access-Control-Allow-Origin": origin,
                    "Access-Control-Allow-Methods": self.ALLOW_METHODS,
                    "Access-Control-Allow-Headers": self.ALLOW_HEADERS,
                    "Access-Control-Max-Age": "3600",
                    "Access-Control-Allow-Credentials": "true",
                    "Vary": "Origin",
                },
            )

        response = await call_next(request)

        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP rate limiting middleware.
    Every /api path counts against the general bucket; the credential
    endpoints also count against a much smaller auth bucket.
    """

    API_PREFIX = "/api"
    AUTH_PATHS = frozenset({
        "/api/auth/signup",
        "/api/auth/login",
        "/api/auth/request-password-reset",
        "/api/auth/reset-password",
    })

    def __init__(
        self,
        app,
        cache: InMemoryCacheManager,
        auth_limit: int,
        api_limit: int,
        window_seconds: int,
        trust_proxy: bool = False,
    ):
        super().__init__(app)
        self.cache = cache
        self.auth_limit = auth_limit
        self.api_limit = api_limit
        self.window_seconds = window_seconds
        self.trust_proxy = trust_proxy

    def _buckets(self, path: str):
        if not path.startswith(self.API_PREFIX):
            return []
        buckets = [("api", self.api_limit, "Too many requests. Please slow down.")]
        if path.rstrip("/") in self.AUTH_PATHS:
            buckets.append(("auth", self.auth_limit, "Too many auth attempts. Please try again later."))
        return buckets

    async def dispatch(self, request: Request, call_next):
        buckets = self._buckets(request.url.path)
        if not buckets or request.method == "OPTIONS":
            return await call_next(request)

        ip = client_ip(request, self.trust_proxy)
        headers = {}
        for bucket, limit, message in buckets:
            count, reset_in = self.cache.hit(f"rate_limit:{bucket}:{ip}", self.window_seconds)
            # The last (strictest) bucket's numbers are reported.
            headers = {
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": str(max(0, limit - count)),
            }
            if count > limit:
                logger.warning(f"[RATE_LIMIT] {bucket} limit exceeded for IP {ip}")
                headers["Retry-After"] = str(max(1, int(reset_in)))
                return JSONResponse(status_code=429, content={"error": message}, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response




class ErrorCatchingMiddleware(BaseHTTPMiddleware):
    """
    Turn an unhandled exception into the standard 500 body inside the
    middleware stack, so the outer layers still add their headers.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.opt(exception=e).error(f"Unhandled error on {request.method} {request.url.path}")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})


class UploadTooLarge(Exception):
    pass


class UploadLimitMiddleware:
    """
    Cap the request body of upload endpoints before any form parsing.

    A declared Content-Length over the cap is refused up front; otherwise
    the body is counted as it streams in and the request is cut off once
    the cap is passed. The cap is the file limit plus room for the text
    fields sent alongside it.
    """

    FORM_ALLOWANCE = 64 * 1024
    METHODS = frozenset({"POST", "PUT", "PATCH"})

    def __init__(self, app, max_file_bytes: int, path_prefixes: Tuple[str, ...] = ("/api/documents",)):
        self.app = app
        self.max_bytes = max_file_bytes + self.FORM_ALLOWANCE
        self.path_prefixes = path_prefixes

    def _applies(self, scope) -> bool:
        return (
            scope["type"] == "http"
            and scope.get("method") in self.METHODS
            and scope.get("path", "").startswith(self.path_prefixes)
        )

    async def _reject(self, scope, receive, send):
        response = JSONResponse(status_code=400, content={"error": "File too large"})
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if not self._applies(scope):
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            logger.warning(f"[UPLOAD] Refused {declared} byte body on {scope['path']}")
            await self._reject(scope, receive, send)
            return

        received = 0
        exceeded = False

        async def limited_receive():
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    exceeded = True
                    raise UploadTooLarge()
            return message

        async def guarded_send(message):
            # Whatever the app renders for the aborted parse is replaced below.
            if not exceeded:
                await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception:
            if not exceeded:
                raise

        if exceeded:
            logger.warning(f"[UPLOAD] Cut off body over {self.max_bytes} bytes on {scope['path']}")
            await self._reject(scope, receive, send)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with status and latency"""

    def __init__(self, app, trust_proxy: bool = False):
        super().__init__(app)
        self.trust_proxy = trust_proxy

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f}ms) from {client_ip(request, self.trust_proxy)}"
        )
        return response
