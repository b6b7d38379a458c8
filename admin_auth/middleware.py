"""
Custom middleware for admin_auth

Includes:
- Request ID tracking for request tracing
- HTTP metrics collection for Prometheus monitoring
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from admin_auth import metrics


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags every request and response with an X-Request-ID header.

    A client-supplied X-Request-ID is kept, otherwise a UUID4 is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class HTTPMetricsMiddleware(BaseHTTPMiddleware):
    """Collects request count, latency and in-flight gauges per route"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        endpoint = self._normalize_path(request.url.path)

        metrics.http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()
        status = 500

        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            metrics.http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()
            metrics.http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(time.time() - start_time)
            metrics.http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    def _normalize_path(self, path: str) -> str:
        """
        Collapse dynamic segments to keep label cardinality bounded.

        Admin routes carry no IDs in the path today, but tokens and numeric IDs
        are still replaced in case a client requests unknown URLs.
        """
        if path in ["/", "/health", "/metrics", "/docs", "/openapi.json", "/redoc"]:
            return path

        normalized_parts = []
        for part in path.split("/"):
            if not part:
                continue
            if part.isdigit():
                normalized_parts.append("{id}")
            elif len(part) > 32 and part.replace("_", "").isalnum():
                normalized_parts.append("{token}")
            else:
                normalized_parts.append(part)

        return "/" + "/".join(normalized_parts)
