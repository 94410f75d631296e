"""Health check API router."""

from fastapi import APIRouter

from app.infra.config import config

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check():
    """Liveness check."""
    return {
        "status": "ok",
        "service": "voice-console-tools",
        "version": "1.0.0",
        "environment": config.APP_ENV,
    }
