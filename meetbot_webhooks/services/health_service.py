from datetime import UTC, datetime

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.schemas.health import HealthResponse


class HealthService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_status(self) -> HealthResponse:
        return HealthResponse(
            service=self.settings.app_name,
            version=self.settings.app_version,
            recordings_store=self.settings.recordings_store,
            webhook_signing_configured=bool(self.settings.webhook_signing_secret),
            timestamp=datetime.now(UTC),
        )
