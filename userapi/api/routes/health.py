from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from userapi.api.schemas import HealthResponse
from userapi.security.auth.dependencies import require_metrics_access
from userapi.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint"""
    logger.debug("Health check requested")
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))


@router.get("/metrics", dependencies=[Depends(require_metrics_access)])
def metrics() -> Response:
    """Prometheus scrape endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
