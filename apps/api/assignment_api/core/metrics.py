from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

_HTTP_REQUESTS_TOTAL = Counter(
    "texting_http_requests_total",
    "Total HTTP requests handled by the API.",
    labelnames=("method", "path", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "texting_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "path"),
)
_HTTP_RATE_LIMITED_TOTAL = Counter(
    "texting_http_rate_limited_total",
    "Total HTTP requests blocked by rate limiting.",
    labelnames=("method", "path"),
)
_CONTACTS_CLAIMED_TOTAL = Counter(
    "texting_contacts_claimed_total",
    "Campaign contacts attached to an assignment by the claim engine.",
    labelnames=("assignment_type",),
)
_DISTRIBUTIONS_TOTAL = Counter(
    "texting_distributions_total",
    "Distribution sessions by outcome.",
    labelnames=("outcome",),
)
_ASSIGNMENT_REQUESTS_TOTAL = Counter(
    "texting_assignment_requests_total",
    "Assignment request transitions.",
    labelnames=("status",),
)
_POOL_NOTIFICATIONS_TOTAL = Counter(
    "texting_pool_exhaustion_notifications_total",
    "Pool exhaustion webhook deliveries by result.",
    labelnames=("result",),
)


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    safe_path = path or "unknown"
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        path=safe_path,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, path=safe_path).observe(
        max(0.0, duration_ms / 1000.0)
    )
    if rate_limited:
        _HTTP_RATE_LIMITED_TOTAL.labels(method=safe_method, path=safe_path).inc()


def observe_contacts_claimed(*, assignment_type: str, count: int) -> None:
    if count > 0:
        _CONTACTS_CLAIMED_TOTAL.labels(assignment_type=assignment_type).inc(count)


def observe_distribution(*, outcome: str) -> None:
    # outcome: fulfilled|partial|no_work|error
    _DISTRIBUTIONS_TOTAL.labels(outcome=outcome).inc()


def observe_assignment_request(*, status: str) -> None:
    _ASSIGNMENT_REQUESTS_TOTAL.labels(status=status).inc()


def observe_pool_notification(*, result: str) -> None:
    _POOL_NOTIFICATIONS_TOTAL.labels(result=result).inc()


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
