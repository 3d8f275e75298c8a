"""Health check endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from ...config import settings
from ..deps import get_db

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness check - always returns ok if app is running."""
    return {"status": "healthy", "environment": settings.environment}


@router.get("/health/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - checks the database and report configuration.

    Returns:
        dict: Readiness status with dependency checks
    """
    errors = []

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        errors.append(f"database: {str(e)}")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": errors}
        )

    return {
        "status": "ready",
        "database": "ok",
        "report_webhook": "configured" if settings.report_webhook_url else "missing",
        "gemini": "configured" if settings.gemini_api_key else "missing",
    }
