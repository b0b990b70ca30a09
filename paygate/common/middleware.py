"""HTTP policies applied around every route: headers, preflight, limits, metrics."""

import math
from time import perf_counter
from typing import Callable
from uuid import uuid4

from fastapi import HTTPException
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from paygate.common.config import GatewaySettings
from paygate.common.errors import unexpected_error_response
from paygate.common.logging import logger, request_id_ctx
from paygate.common.metrics import http_request_duration_seconds, http_requests_total, rate_limited_total
from paygate.common.rate_limit import RateLimitDecision


SECURITY_HEADERS = {
    "content-security-policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;form-action 'self';"
        "frame-ancestors 'self';img-src 'self' data:;object-src 'none';script-src 'self';"
        "script-src-attr 'none';style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "cross-origin-opener-policy": "same-origin",
    "cross-origin-resource-policy": "same-origin",
    "origin-agent-cluster": "?1",
    "referrer-policy": "no-referrer",
    "strict-transport-security": "max-age=15552000; includeSubDomains",
    "x-content-type-options": "nosniff",
    "x-dns-prefetch-control": "off",
    "x-download-options": "noopen",
    "x-frame-options": "DENY",
    "x-permitted-cross-domain-policies": "none",
    "x-xss-protection": "0",
}

PREFLIGHT_ALLOW_METHODS = "GET,PUT,POST,DELETE,OPTIONS"
PREFLIGHT_ALLOW_HEADERS = "Content-Type, Authorization, Content-Length, X-Requested-With"
RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."
BODY_TOO_LARGE = "Request entity too large"
UNMATCHED_ROUTE = "unmatched"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for log correlation and record request count/latency."""

    def __init__(self, app, *, service_name: str, header_name: str = "x-request-id") -> None:
        super().__init__(app)
        self._service_name = service_name
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = (request.headers.get(self._header_name) or "").strip() or str(uuid4())
        token = request_id_ctx.set(request_id)
        start = perf_counter()
        route = UNMATCHED_ROUTE
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            response.headers[self._header_name] = request_id
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=self._service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=self._service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
            request_id_ctx.reset(token)


class PreflightMiddleware(BaseHTTPMiddleware):
    """Answer every OPTIONS request directly, echoing the caller's Origin.

    The echoed origin is not checked against the CORS allow-list.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "OPTIONS":
            return await call_next(request)
        headers = {
            "access-control-allow-methods": PREFLIGHT_ALLOW_METHODS,
            "access-control-allow-headers": PREFLIGHT_ALLOW_HEADERS,
            "access-control-allow-credentials": "true",
        }
        origin = request.headers.get("origin")
        if origin:
            headers["access-control-allow-origin"] = origin
            headers["vary"] = "Origin"
        return PlainTextResponse("OK", status_code=200, headers=headers)


def client_key(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "x-ratelimit-limit": str(decision.limit),
        "x-ratelimit-remaining": str(decision.remaining),
        "x-ratelimit-reset": str(math.ceil(decision.reset_at)),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Cap requests per client address on every path under `prefix`."""

    def __init__(self, app, *, limiter, prefix: str = "/api") -> None:
        super().__init__(app)
        self._limiter = limiter
        self._prefix = prefix.rstrip("/")

    def _applies(self, path: str) -> bool:
        return path == self._prefix or path.startswith(self._prefix + "/")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._applies(request.url.path):
            return await call_next(request)
        key = client_key(request)
        decision = await self._limiter.hit(key)
        headers = _rate_limit_headers(decision)
        if not decision.allowed:
            rate_limited_total.inc()
            logger.warning("rate_limited client=%s path=%s", key, request.url.path)
            headers["retry-after"] = str(decision.retry_after(self._limiter.clock()))
            return PlainTextResponse(RATE_LIMIT_MESSAGE, status_code=429, headers=headers)
        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Turn unexpected exceptions into the 500 envelope inside the policy stack.

    Sits inside the header/CORS middleware so error responses carry their headers.
    """

    def __init__(self, app, *, config: GatewaySettings) -> None:
        super().__init__(app)
        self._config = config

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return unexpected_error_response(request, exc, self._config)


class BodySizeLimitMiddleware:
    """Enforce the route's body limit on the declared length and on the bytes received.

    Chunked uploads carry no Content-Length, so the body stream itself is counted
    and reading past the limit raises a 413.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int, raw_paths: dict[str, int] | None = None) -> None:
        self.app = app
        self._max = int(max_body_bytes)
        self._raw_paths = raw_paths or {}

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = self._raw_paths.get(scope["path"], self._max)
        content_length = Headers(scope=scope).get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > limit
            except ValueError:
                response = JSONResponse(status_code=400, content={"error": "Invalid Content-Length"})
                await response(scope, receive, send)
                return
            if too_large:
                response = JSONResponse(status_code=413, content={"error": BODY_TOO_LARGE})
                await response(scope, receive, send)
                return

        received = 0

        async def counting_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise HTTPException(status_code=413, detail=BODY_TOO_LARGE)
            return message

        await self.app(scope, counting_receive, send)
