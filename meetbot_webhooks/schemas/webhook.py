from datetime import datetime
from typing import Any

from pydantic import BaseModel


class StatusEvent(BaseModel):
    bot_id: str
    status_code: str | None = None
    sub_code: str | None = None


class StatusWebhookResponse(BaseModel):
    ok: bool = True
    skipped: bool | None = None
    action: str | None = None
    recording_id: str | None = None
    sync_status: int | None = None
    error: str | None = None


class BotCommandPayload(BaseModel):
    meeting_id: str
    meeting_url: str
    title: str | None = None
    start_time: str | None = None
    end_time: str | None = None


class BotForwardResult(BaseModel):
    status: int
    success: bool
    response: str | None = None
    error: str | None = None


class StartBotResponse(BaseModel):
    success: bool = True
    message: str
    meeting_id: str
    received_at: datetime
    forwarded: BotForwardResult | None = None


class WebhookTokenResponse(BaseModel):
    signature: str
    timestamp: str
    expires_at: int


class BotTriggerResult(BaseModel):
    meeting_id: str
    status: str
    meeting_url: str | None = None
    response: dict[str, Any] | None = None
    error: str | None = None


class BotTriggerBatchResponse(BaseModel):
    results: list[BotTriggerResult]
