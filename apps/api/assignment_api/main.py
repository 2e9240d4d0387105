from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from assignment_api.core.config import get_settings
from assignment_api.core.logging_config import configure_logging
from assignment_api.core.metrics import render_latest
from assignment_api.core.middleware import (
    RateLimiter,
    apply_security_headers,
    build_request_id,
    is_rate_limited_path,
    log_request_completion,
    now_ts,
    rate_limit_key,
    rate_limit_response,
    request_id_ctx,
    route_template,
)
from assignment_api.routers.assignment_requests import router as assignment_requests_router
from assignment_api.routers.assignment_targets import router as assignment_targets_router
from assignment_api.routers.assignments import router as assignments_router
from assignment_api.routers.auth import router as auth_router
from assignment_api.routers.autoassign import router as autoassign_router
from assignment_api.routers.campaigns import router as campaigns_router
from assignment_api.routers.health import router as health_router
from assignment_api.routers.organization import router as organization_router
from assignment_api.services.assignment.errors import AuthorizationError, ExternalServiceError


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings=settings)

    app = FastAPI(title="P2P Texting Assignment API", version=settings.VERSION)

    rate_limiter = (
        RateLimiter(max_requests=settings.RATE_LIMIT_REQUESTS_PER_MINUTE)
        if settings.RATE_LIMIT_REQUESTS_PER_MINUTE > 0
        else None
    )
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers_and_request_context(request, call_next):  # type: ignore[no-untyped-def]
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        start_ts = now_ts()
        method = request.method
        path = request.url.path
        response = None
        blocked = False
        status_code = 500

        try:
            if rate_limiter is not None and is_rate_limited_path(path, settings=settings):
                if not rate_limiter.allow(rate_limit_key(request), now_ts=now_ts()):
                    blocked = True
                    response = rate_limit_response()

            if response is None:
                response = await call_next(request)

            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response, settings=settings)
            return response
        finally:
            log_request_completion(
                request_id=request_id,
                method=method,
                path=path,
                route_path=route_template(request),
                status_code=status_code,
                duration_ms=int((now_ts() - start_ts) * 1000),
                rate_limited=blocked,
            )
            request_id_ctx.reset(token)

    @app.exception_handler(AuthorizationError)
    async def _authorization_error(_request: Request, exc: AuthorizationError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc) or "Forbidden"})

    @app.exception_handler(ExternalServiceError)
    async def _external_service_error(_request: Request, exc: ExternalServiceError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            body, content_type = render_latest()
            return Response(content=body, media_type=content_type)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(assignment_requests_router)
    app.include_router(assignments_router)
    app.include_router(assignment_targets_router)
    app.include_router(campaigns_router)
    app.include_router(organization_router)
    app.include_router(autoassign_router)
    return app


app = create_app()
