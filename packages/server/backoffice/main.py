"""
Back Office API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.api.v1 import router as api_v1_router
from backoffice.authz import AccessError, AccessResolver, CapabilityGate, SqlAccessStore
from backoffice.core.config import Settings, get_settings
from backoffice.core.database import async_session_factory, engine
from backoffice.core.logging import configure_logging
from backoffice.core.middleware import RequestContextMiddleware
from backoffice_shared.schemas.common import ErrorBody

log = structlog.get_logger()


def build_gate(settings: Settings) -> CapabilityGate:
    """Wire the SQL store, resolver and gate; one instance per process."""
    resolver = AccessResolver(
        SqlAccessStore(async_session_factory),
        lookup_timeout=settings.authz_lookup_timeout_seconds,
    )
    return CapabilityGate(resolver, operator_override=settings.operator_override_enabled)


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    """Render authorization failures in the standard error envelope."""
    body = ErrorBody(
        code=exc.code,
        message=exc.message,
        status=exc.status_code,
        retryable=exc.retryable,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": body.model_dump()},
        headers=headers,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Back Office",
        description="Multi-tenant back office: teams, projects and role-based access.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.gate = build_gate(settings)

    # Middleware (outermost first)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.add_exception_handler(AccessError, access_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "Back office starting",
            operator_override=settings.operator_override_enabled,
            lookup_timeout=settings.authz_lookup_timeout_seconds,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Back office shutting down")
        await engine.dispose()

    return app


app = create_app()
