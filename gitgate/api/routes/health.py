"""Liveness endpoint"""

from fastapi import APIRouter, Depends

from gitgate.api.dependencies import get_settings_dep
from gitgate.api.models import HealthResponse
from gitgate.core.config import Settings
from gitgate.infrastructure.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings_dep)) -> HealthResponse:
    """Returns 200 while the process is serving requests; needs no credentials"""
    logger.debug("health_check", version=settings.app_version)
    return HealthResponse(status="ok", version=settings.app_version)
