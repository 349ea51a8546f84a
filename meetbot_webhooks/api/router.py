from fastapi import APIRouter

from meetbot_webhooks.api.routes.health import router as health_router
from meetbot_webhooks.api.routes.webhooks import router as webhooks_router

api_router = APIRouter()
v1_router = APIRouter(prefix="/v1")

api_router.include_router(health_router)
api_router.include_router(webhooks_router)

# Versioned alias so provider webhook URLs can be pinned.
v1_router.include_router(webhooks_router)
api_router.include_router(v1_router)
