"""
Health Check Routes

Load balancer and orchestrator probes plus the Prometheus scrape endpoint.
"""

import os
import time

import psutil
from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from service_hub.core.config.settings import get_settings
from service_hub.core.logging.logger import get_logger
from service_hub.events.models import utc_timestamp
from service_hub.infrastructure.monitoring.metrics_collector import get_metrics_collector
from service_hub.services import lifecycle

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

_started_at = time.monotonic()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    version: str
    services: dict[str, bool]
    uptime_seconds: float
    memory: dict[str, float]


def memory_usage() -> dict[str, float]:
    """Process resident memory and host memory, in MB."""
    mb = 1024 * 1024
    return {
        "used": round(psutil.Process().memory_info().rss / mb, 2),
        "total": round(psutil.virtual_memory().total / mb, 2),
    }


@router.get("/health", response_model=HealthResponse)
async def health():
    """
    Dependency health.

    200 when both the broker and the cache are healthy, 503 (degraded)
    otherwise.
    """
    try:
        services = await lifecycle.health_check()
    except Exception as e:
        logger.error("Health check error", stage="API.HEALTH", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "timestamp": utc_timestamp(), "error": "Health check failed"},
        )

    healthy = all(services.values())
    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=utc_timestamp(),
        version=get_settings().app.APP_VERSION,
        services=services,
        uptime_seconds=round(time.monotonic() - _started_at, 3),
        memory=memory_usage(),
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())


@router.get("/health/ready")
async def readiness_probe():
    """Ready to accept traffic once both dependencies answer."""
    services = await lifecycle.health_check()
    if all(services.values()):
        return {"status": "ready"}
    return JSONResponse(status_code=503, content={"status": "not ready", "services": services})


@router.get("/health/live")
async def liveness_probe():
    """Process is running."""
    return {"status": "alive", "timestamp": utc_timestamp(), "pid": os.getpid()}


@router.get("/metrics", include_in_schema=False)
async def metrics():
    collector = get_metrics_collector()
    return Response(content=collector.get_prometheus_metrics(), media_type=collector.get_content_type())
