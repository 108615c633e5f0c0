"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException
import structlog

from src.core.config import settings
from src.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter()


def _provider_status() -> dict:
    """Configured chain order and which providers have credentials."""
    chain = settings.provider_chain
    configured = [
        name for name in chain if getattr(settings, f"{name}_api_key", None)
    ]
    return {
        "status": "healthy" if configured else "unhealthy",
        "chain": chain,
        "configured": configured,
    }


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        System health status including database and provider configuration.
    """
    db_health = await check_database_health()
    providers = _provider_status()

    healthy = db_health["status"] == "healthy" and providers["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": "0.1.0",
        "debug": settings.debug,
        "components": {
            "database": db_health,
            "providers": providers,
        },
    }


@router.get("/health/live")
async def liveness():
    """
    Kubernetes-style liveness probe.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """
    Kubernetes-style readiness probe.

    Returns 200 if the database is reachable and at least one provider
    has credentials.
    """
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Database not ready")

    if _provider_status()["status"] != "healthy":
        raise HTTPException(status_code=503, detail="No LLM provider configured")

    return {"status": "ready"}
