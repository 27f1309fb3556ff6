"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from meta_relay.core.config import Settings, get_settings
from meta_relay.core.database import check_db_connection
from meta_relay.core.logging import get_logger
from meta_relay.schemas.message import HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to receive webhooks."
)
async def readiness(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """
    Readiness probe.

    Checks:
    - Database is reachable
    - META_APP_SECRET is configured (webhooks cannot be verified otherwise)
    - META_WEBHOOK_VERIFY_TOKEN is configured
    """
    checks = {
        "database": "ok" if check_db_connection() else "failed",
        "app_secret": "ok" if settings.is_app_secret_configured else "not configured",
        "verify_token": "ok" if settings.meta_webhook_verify_token else "not configured",
    }

    failing = [name for name, state in checks.items() if state != "ok"]
    if not failing:
        return HealthResponse(status="ok", checks=checks)

    logger.warning("Readiness check failed", extra={"extra_data": {"failing": failing}})
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
