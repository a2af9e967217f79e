"""Main FastAPI application for Verdict"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from verdict.api import admin, credits, health, judge, profiles, requests, webhooks
from verdict.config import settings
from verdict.db.database import close_db, init_db
from verdict.db.models import utcnow
from verdict.errors import VerdictError
from verdict.middleware.logging import LoggingMiddleware
from verdict.middleware.request_id import RequestIDMiddleware
from verdict.services.cache import EntityCache
from verdict.utils.logging import setup_logging

# Set up logging
setup_logging()
logger = logging.getLogger(__name__)

API_ROUTERS = [
    (profiles.auth_router, "auth", "auth"),
    (profiles.router, "profile", "profile"),
    (requests.router, "requests", "requests"),
    (judge.router, "judge", "judge"),
    (credits.router, "credits", "credits"),
    (webhooks.router, "webhooks", "webhooks"),
    (admin.router, "admin", "admin"),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting Verdict application...")

    issues = settings.validate_configuration()
    for warning in issues["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    for error in issues["errors"]:
        logger.error(f"Configuration error: {error}")

    await init_db()
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down Verdict application...")
    app.state.cache.clear()
    await close_db()
    logger.info("Application shutdown complete")


async def verdict_error_handler(request: Request, exc: VerdictError) -> JSONResponse:
    """Render domain errors with their code and HTTP status"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"path": request.url.path, **exc.details})
    else:
        logger.info(f"{exc.code}: {exc.message}", extra={"path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "timestamp": utcnow().isoformat(),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": str(exc) if settings.app_debug else "An error occurred",
            "timestamp": utcnow().isoformat(),
        },
    )


def create_app(cache: EntityCache | None = None) -> FastAPI:
    app = FastAPI(
        title="Verdict API",
        description="""
        ## Anonymous feedback marketplace

        Submitters spend credits to request verdicts; judges earn per verdict.

        ### Workflow
        1. **Initialize** → `POST /api/v1/auth/initialize` after login grants signup credits
        2. **Request** → `POST /api/v1/requests` charges the tier's credits
        3. **Judge** → `POST /api/v1/judge/verdicts` until the request reaches its target
        4. **Earn** → judge earnings mature and become available for payout
        """,
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
    )

    # Shared per-process state handed to services through dependencies
    app.state.cache = cache if cache is not None else EntityCache(default_ttl=settings.cache_ttl_seconds)

    # Configure middleware (order matters - last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(VerdictError, verdict_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/status", response_class=JSONResponse)
    async def api_status() -> dict[str, Any]:
        """API status endpoint for programmatic access"""
        return {
            "name": "Verdict API",
            "version": "0.1.0",
            "status": "operational",
            "payments": settings.is_payments_configured(),
            "docs": "/docs" if settings.app_debug else None,
        }

    app.include_router(health.router, prefix="/health", tags=["health"])
    for router, prefix, tag in API_ROUTERS:
        app.include_router(router, prefix=f"/api/v1/{prefix}", tags=[tag])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "verdict.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )
