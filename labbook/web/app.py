"""FastAPI application for the LabBook booking portal API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from labbook.core.errors import ErrorKind, LabBookError, RateLimitedError
from labbook.core.logging import configure_logging
from labbook.db.connection import close_db
from labbook.web.dependencies import reset_dependencies
from labbook.web.routes import (
    admin_bookings,
    auth,
    billing,
    bookings,
    documents,
    health,
    jobs,
    modifications,
    samples,
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


# Exception Handlers
async def labbook_error_handler(request: Request, exc: LabBookError) -> JSONResponse:
    """Map domain errors to ``{"error", "detail", "fields"}`` by kind."""
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
        }
    if exc.status_code >= 500:
        logger.error("request_error", kind=exc.kind.value, detail=exc.message)
    else:
        logger.info("request_rejected", kind=exc.kind.value, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": ErrorKind.VALIDATION.value, "detail": "Invalid request", "fields": fields},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal", "detail": "An unexpected error occurred"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()
    reset_dependencies()


def create_app() -> FastAPI:
    """Build the API application with middleware, handlers and routers."""
    configure_logging()

    app = FastAPI(
        title="LabBook Booking Portal",
        description="Lab service booking, review, document verification and billing API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    # Prometheus Metrics
    Instrumentator().instrument(app).expose(app)

    app.add_exception_handler(LabBookError, labbook_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include Routers
    app.include_router(auth.router)
    app.include_router(bookings.router)
    app.include_router(admin_bookings.router)
    app.include_router(documents.router)
    app.include_router(billing.router)
    app.include_router(samples.router)
    app.include_router(modifications.router)
    app.include_router(jobs.router)
    app.include_router(health.router)

    return app


app = create_app()
