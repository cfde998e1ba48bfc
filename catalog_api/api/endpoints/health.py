import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from catalog_api.models.health import (
    ApiStatus,
    CacheStatus,
    DatabaseStatus,
    HealthResponse,
    ServiceBanner,
    ServiceStatuses,
)
from catalog_api.persistence.dependencies import get_write_repository
from catalog_api.persistence.repositories import ProductRepository, StoreError
from catalog_api.services.cache import get_cache_health_tracker
from catalog_api.services.cache_health import CacheHealthTracker

logger = logging.getLogger(__name__)

router = APIRouter()

_PROCESS_STARTED = time.monotonic()

ENDPOINTS = [
    "GET  /",
    "GET  /health",
    "GET  /products",
    "GET  /products/:id (with resilient cache)",
    "POST /products",
    "PUT  /products/:id (invalidates cache)",
]


def process_uptime() -> float:
    return time.monotonic() - _PROCESS_STARTED


@router.get("/", response_model=ServiceBanner)
async def service_banner() -> ServiceBanner:
    return ServiceBanner(
        message="Product catalog API with resilient cache",
        status="running",
        timestamp=datetime.now(timezone.utc),
        endpoints=ENDPOINTS,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Store down"}},
)
async def healthcheck(
    repository: ProductRepository = Depends(get_write_repository),
    cache_health: CacheHealthTracker = Depends(get_cache_health_tracker),
):
    """Readiness probe. Only a store failure degrades the reported status."""
    try:
        probe = await repository.probe()
    except StoreError as exc:
        logger.warning("Health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "error": "database unavailable"},
        )

    connected = cache_health.reachable
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        services=ServiceStatuses(
            database=DatabaseStatus(
                status="healthy",
                time=probe.db_time,
                product_count=probe.product_count,
            ),
            cache=CacheStatus(
                status="connected" if connected else "disconnected",
                connected=connected,
            ),
            api=ApiStatus(status="running", uptime=process_uptime()),
        ),
    )
