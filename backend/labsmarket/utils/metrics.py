"""
Prometheus metrics definitions for the API and the upload core.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Upload metrics
uploads_total = Counter(
    'uploads_total',
    'Total upload attempts by outcome',
    ['provider', 'outcome']
)

upload_strategy_failures_total = Counter(
    'upload_strategy_failures_total',
    'Total failed delivery strategy attempts',
    ['provider', 'strategy']
)

upload_duration_seconds = Histogram(
    'upload_duration_seconds',
    'Upload duration in seconds',
    ['provider', 'outcome'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

upload_bytes_total = Counter(
    'upload_bytes_total',
    'Total bytes delivered to storage',
    ['provider']
)

# Connectivity probe metrics
connectivity_probes_total = Counter(
    'connectivity_probes_total',
    'Total connectivity probes by result',
    ['provider', 'result']
)

# Points metrics
upload_points_awarded_total = Counter(
    'upload_points_awarded_total',
    'Total contribution points awarded for uploads',
    ['provider']
)

tracking_failures_total = Counter(
    'tracking_failures_total',
    'Total uploads that could not be recorded or rewarded'
)
