"""
Health and Readiness Endpoints

Kubernetes-compatible health checks for load balancers and orchestration.
"""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from src.config import settings
from src.repositories import db_manager

router = APIRouter(tags=["Health"])

# API version - single source of truth
API_VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": "ecf-webhooks",
        "version": API_VERSION
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check - whether service can handle requests.

    The pipeline must be built. MongoDB is reported but does not gate
    readiness: without it the service runs on the in-memory ledger.

    Returns 200 if ready, 503 if not ready.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "reason": "Pipeline not initialized"
            }
        )

    mongodb = "disconnected"
    if getattr(request.app.state, "mongo_connected", False):
        try:
            await db_manager.ping()
            mongodb = "connected"
        except Exception as e:
            logger.error(f"Readiness check: MongoDB ping failed: {e}")
            mongodb = "unreachable"

    return {
        "status": "ready",
        "mongodb": mongodb,
        "ai": "enabled" if settings.ai_enabled else "disabled",
        "pipeline": "initialized"
    }


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "EasyCashFlows Webhook Engine",
        "version": API_VERSION,
        "endpoints": {
            "health": "/health",
            "ready": "/ready",
            "metrics": "/metrics",
            "webhooks": "/webhooks/info",
            "notification_events": "/notifications/events (POST)"
        }
    }
