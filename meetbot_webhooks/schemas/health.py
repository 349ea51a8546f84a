from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    recordings_store: str
    webhook_signing_configured: bool
    timestamp: datetime
