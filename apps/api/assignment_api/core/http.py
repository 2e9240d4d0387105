from __future__ import annotations

from collections.abc import Generator

import httpx

from assignment_api.core.config import get_settings


def build_http_client() -> httpx.Client:
    return httpx.Client(timeout=get_settings().WEBHOOK_TIMEOUT_SECONDS)


def get_http_client() -> Generator[httpx.Client, None, None]:
    # Centralize HTTP client configuration (timeouts, etc) so we can override in tests.
    with build_http_client() as client:
        yield client
