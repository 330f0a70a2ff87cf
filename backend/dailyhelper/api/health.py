"""Health check endpoints for deployment readiness monitoring."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from ..deps import get_database
from ..models import Database

router = APIRouter(tags=["Health"])


@router.get("/health/live")
async def health_live():
    """Liveness probe - always returns ok if service is running."""
    return {"status": "ok", "checks": {"basic": "ok"}}


@router.get("/health/ready")
def health_ready(database: Database = Depends(get_database)):
    """Readiness probe - checks the relational store answers."""
    checks = {}
    status_code = 200
    try:
        database.ping()
        checks["db"] = "ok"
    except Exception as e:
        logger.warning("readiness db check failed: {}", e)
        checks["db"] = f"error: {e.__class__.__name__}"
        status_code = 503

    return JSONResponse(
        content={"status": "ok" if status_code == 200 else "error", "checks": checks},
        status_code=status_code,
    )
