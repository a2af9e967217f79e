"""Health check endpoints"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.config import settings
from verdict.db.database import get_db
from verdict.db.models import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": "Verdict API",
        "version": "0.1.0",
    }


@router.get("/ready")
async def readiness_check(request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Readiness check including database connectivity"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "payments": "enabled" if settings.is_payments_configured() else "disabled",
        "cache_entries": len(request.app.state.cache),
    }

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = "healthy" if result.scalar() == 1 else "unhealthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"

    return {
        "status": "unhealthy" if checks["database"] == "unhealthy" else "healthy",
        "timestamp": utcnow().isoformat(),
        "checks": checks,
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness endpoint"""
    return {"status": "alive"}
