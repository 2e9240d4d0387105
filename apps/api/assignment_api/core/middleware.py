from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from assignment_api.core.config import Settings
from assignment_api.core.metrics import observe_http_request
from assignment_api.core.security import new_random_token

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("assignment.api")

# Probes and scrapes must never be throttled.
_UNTHROTTLED_PATHS = frozenset({"/healthz", "/readyz"})


@dataclass
class RateLimiter:
    max_requests: int
    window_seconds: int = 60
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _buckets: dict[str, deque[float]] = field(default_factory=dict)

    def allow(self, key: str, *, now_ts: float) -> bool:
        with self._lock:
            bucket = self._buckets.setdefault(key, deque())
            cutoff = now_ts - float(self.window_seconds)
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= self.max_requests:
                return False

            bucket.append(now_ts)
            return True


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:128]
    return new_random_token(nbytes=18)


def apply_security_headers(response: Response, *, settings: Settings) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)


def is_rate_limited_path(path: str, *, settings: Settings) -> bool:
    return path not in _UNTHROTTLED_PATHS and path != settings.PROMETHEUS_METRICS_PATH


def rate_limit_key(request: Request) -> str:
    # The external assignment service authenticates with Basic auth from a
    # handful of hosts; bucket it per credential rather than per IP.
    authorization = (request.headers.get("authorization") or "").strip()
    if authorization.lower().startswith("basic "):
        return f"basic:{authorization[6:][:64]}"

    forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        return forwarded_for.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_response() -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    route_path: str | None,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    # Label metrics by route template so /assignment-requests/{request_id} is one series.
    observe_http_request(
        method=method,
        path=route_path or path,
        status_code=status_code,
        duration_ms=duration_ms,
        rate_limited=rate_limited,
    )
    logger.info(
        json.dumps(
            {
                "event": "http.request.completed",
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "rate_limited": rate_limited,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def route_template(request: Request) -> str | None:
    route = request.scope.get("route")
    return getattr(route, "path", None)


def now_ts() -> float:
    return time.time()
