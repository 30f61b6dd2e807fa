"""FastAPI application for the Jadwa engagement engine."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from jadwa.config import AppConfig, get_config
from jadwa.container import Services, build_services
from jadwa.core.logging import configure_logging
from jadwa.errors import JadwaError
from jadwa.web.routes import (
    admin,
    consultations,
    health,
    messages,
    payments,
    realtime,
    study_requests,
)

logger = structlog.get_logger()


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


async def jadwa_error_handler(request: Request, exc: JadwaError) -> JSONResponse:
    """Render engine errors as ``{"error": {"kind", "message", "details"}}``."""
    if exc.http_status >= 500:
        logger.error("request_error", kind=exc.kind, error=exc.message)
    else:
        logger.info("request_rejected", kind=exc.kind, error=exc.message)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


def create_app(config: AppConfig | None = None, services: Services | None = None) -> FastAPI:
    """Build the API app.

    Services are created in the lifespan (so engine and locks bind to the
    serving event loop) unless a prebuilt set is passed in.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_config = config or get_config()
        configure_logging(app_config.log_level, app_config.log_format)
        app.state.services = services or build_services(app_config)
        logger.info("app_started", environment=app_config.environment)
        try:
            yield
        finally:
            await app.state.services.aclose()
            logger.info("app_stopped")

    app = FastAPI(
        title="Jadwa Engagement API",
        description="Consultation booking, payment gating, study requests and chat relay",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(JadwaError, jadwa_error_handler)

    # Prometheus Metrics
    Instrumentator().instrument(app).expose(app)

    # Include Routers
    app.include_router(consultations.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    app.include_router(study_requests.router)
    app.include_router(messages.router)
    app.include_router(realtime.router)
    app.include_router(health.router)

    return app
