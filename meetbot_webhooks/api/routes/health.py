from fastapi import APIRouter

from meetbot_webhooks.core.config import get_settings
from meetbot_webhooks.schemas.health import HealthResponse
from meetbot_webhooks.services.health_service import HealthService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthService(get_settings()).get_status()
