"""
HERA Universal API - FastAPI Application

Main application entry point. Creates the FastAPI app and wires up the
universal (v1 RPC family) and v2 (CRUD orchestrator) routers.

Run with: uvicorn hera_api.main:app --reload

Notes:
- CORS middleware is added first so preflight requests are answered
  before authentication runs
- Every error, including unhandled ones, is returned in the
  ``{"error", "code", "request_id"}`` envelope
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.response import ApiResponse
from .config import configure_logging, get_settings, validate_required_env
from .core.errors import setup_error_handlers
from .core.middleware import REQUEST_ID_HEADER, RequestLoggingMiddleware
from .db import reset_supabase_client

# Router imports - explicit for clarity
from .routers.dynamic_data import router as dynamic_data_router
from .routers.entities import router as entities_router
from .routers.entities_v2 import router as entities_v2_router
from .routers.guardrails import router as guardrails_router
from .routers.health import HealthData, health_check
from .routers.health import router as health_router
from .routers.navigation import router as navigation_router
from .routers.pos import router as pos_router
from .routers.presets import router as presets_router
from .routers.relationships import router as relationships_router
from .routers.transactions import router as transactions_router
from .routers.transactions_v2 import router as transactions_v2_router

UNIVERSAL_PREFIX = "/api/universal"
V2_PREFIX = "/api/v2"

# Configure logging before anything else
configure_logging()
logger = logging.getLogger(__name__)

# Missing Supabase credentials abort startup in prod; other envs only log them
validate_required_env(fail_fast=get_settings().is_production)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    The Supabase client is created lazily on the first RPC call, so
    startup only logs; shutdown drops the client.
    """
    settings = get_settings()
    logger.info(f"Starting HERA Universal API v{__version__} (env={settings.environment})")

    yield

    logger.info("Shutting down HERA Universal API...")
    reset_supabase_client()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application with:
    - CORS middleware (outermost)
    - Request logging with X-Request-ID correlation
    - Error handlers producing the standard error envelope
    - Routers under /api/universal and /api/v2, probes under /api

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title="HERA Universal API",
        description=(
            "Schema-driven HTTP gateway over the Sacred Six tables. "
            "Validates requests, runs guardrail checks and forwards each call "
            "to the matching Postgres RPC."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # First added = outermost = runs first on request, last on response
    logger.info(f"[CORS] Allowed origins: {settings.cors_allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    setup_error_handlers(app)

    # Probes: /api/health, /api/ready, /api/version
    app.include_router(health_router, prefix="/api")

    # Universal v1 RPC family
    app.include_router(entities_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(dynamic_data_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(relationships_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(transactions_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(pos_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(presets_router, prefix=UNIVERSAL_PREFIX)
    app.include_router(navigation_router, prefix=UNIVERSAL_PREFIX)

    # v2 CRUD orchestrators
    app.include_router(entities_v2_router, prefix=V2_PREFIX)
    app.include_router(transactions_v2_router, prefix=V2_PREFIX)
    app.include_router(guardrails_router, prefix=V2_PREFIX)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {
            "service": "hera-api",
            "version": __version__,
            "docs": "/docs",
        }

    # Load balancers probe the bare path
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=ApiResponse[HealthData],
        include_in_schema=False,
    )

    logger.info(f"FastAPI app created: {app.title}")
    return app


# Create the application instance
app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "hera_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
