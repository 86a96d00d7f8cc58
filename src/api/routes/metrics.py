"""
Metrics Endpoint

Prometheus-compatible metrics for observability.
"""
from fastapi import APIRouter
from fastapi.responses import Response
from loguru import logger

from src.utils.metrics import metrics

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Includes:
    - Webhook deliveries by provider and outcome
    - Signature failures
    - AI calls and rate-limit retries
    - Reply routes and pipeline latency
    - Outbound sends and rule dispatches

    Content-Type: text/plain; version=0.0.4; charset=utf-8
    """
    try:
        output = metrics.export()
    except Exception as e:
        logger.error(f"Failed to export metrics: {e}", exc_info=True)
        return Response(
            content=f"# Error exporting metrics: {e}\n",
            media_type="text/plain",
            status_code=500
        )

    return Response(
        content=output,
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
