"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.
"""
import re
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from labsmarket.utils.metrics import http_requests_total, http_request_duration_seconds, errors_total

_UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
    re.IGNORECASE
)
_NUMERIC_SEGMENT = re.compile(r'/\d+(?=/|$)')
_UNKNOWN_PROVIDER = re.compile(r'^(/api/storage/)(?!aws/|oort/)[^/]+', re.IGNORECASE)

# Paths that are scraped or polled and would drown the request metrics
SKIPPED_PATHS = {"/metrics", "/api/health"}


def normalize_path(path: str) -> str:
    """
    Normalize path to reduce cardinality.
    Replaces UUIDs, numeric IDs and unknown provider names with placeholders.
    """
    path = _UUID_PATTERN.sub('{id}', path)
    path = _NUMERIC_SEGMENT.sub('/{id}', path)
    return _UNKNOWN_PROVIDER.sub(r'\1{provider}', path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next):
        """Process request and record metrics."""
        if request.url.path in SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        path = normalize_path(request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            http_requests_total.labels(method=method, path=path, status=500).inc()
            raise

        status_code = response.status_code
        http_requests_total.labels(method=method, path=path, status=status_code).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(
            time.perf_counter() - start_time
        )

        # Track errors (4xx and 5xx)
        if status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()

        return response
