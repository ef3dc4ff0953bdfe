"""FastAPI application entrypoint for the content queue service."""

from __future__ import annotations

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from src.approvals.router import router as approvals_router
from src.auth.middleware import AUTH_CONTEXT_KEY, resolve_request_auth_context
from src.auth.router import router as auth_router
from src.core.config import get_settings
from src.core.errors import QueueError
from src.core.logger import bind_request_context, clear_request_context, get_logger
from src.core.metrics import record_http_request, render_prometheus_metrics
from src.core.observability import init_sentry, sentry_scope
from src.media.router import router as media_router
from src.orgs.router import router as orgs_router
from src.publishing.router import router as publishing_router
from src.queue.router import router as queue_router
from src.storage.db import load_models, probe_database


settings = get_settings()
logger = get_logger("content_queue.api")

app = FastAPI(title=settings.app_name, version=settings.app_version)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    auth_context = resolve_request_auth_context(request)
    setattr(request.state, AUTH_CONTEXT_KEY, auth_context)

    org_id = auth_context.org_id if auth_context is not None else None
    bind_request_context(request_id=request_id, org_id=org_id)

    status_code = 500
    try:
        with sentry_scope(org_id=org_id, request_id=request_id):
            response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        duration = perf_counter() - started_at
        if settings.metrics_enabled:
            record_http_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_seconds=duration,
            )
        clear_request_context()

    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, detail=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.code, detail=exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.on_event("startup")
def on_startup() -> None:
    load_models()
    sentry_enabled = init_sentry()
    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        sentry_enabled=sentry_enabled,
        metrics_enabled=settings.metrics_enabled,
        content_generation_provider=settings.content_generation_provider,
        image_provider=settings.image_provider,
        publishing_provider=settings.publishing_provider,
    )


@app.get("/health")
def health() -> JSONResponse:
    database = probe_database()
    payload = {
        "status": "ok" if database.ok else "degraded",
        "env": settings.env,
        "services": {"database": database.as_dict()},
    }
    return JSONResponse(content=payload, status_code=200 if database.ok else 503)


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
    }


@app.get("/metrics")
def metrics() -> PlainTextResponse:
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)

    payload = render_prometheus_metrics(
        app_name=settings.app_name,
        app_version=settings.app_version,
        env=settings.env,
    )
    return PlainTextResponse(
        payload,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(auth_router)
app.include_router(orgs_router)
app.include_router(queue_router)
app.include_router(approvals_router)
app.include_router(publishing_router)
app.include_router(media_router)
