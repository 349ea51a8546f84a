import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, status

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.schemas.webhook import BotCommandPayload, StartBotResponse
from meetbot_webhooks.services.bot_launch_client import BotLaunchClient
from meetbot_webhooks.services.webhook_verifier import WebhookVerifier

logger = logging.getLogger(__name__)


class BotCommandService:
    def __init__(
        self,
        settings: Settings,
        launch_client: BotLaunchClient | None = None,
        verifier: WebhookVerifier | None = None,
    ) -> None:
        self.settings = settings
        self.verifier = verifier or WebhookVerifier(settings)
        self.launch_client = launch_client or BotLaunchClient(
            service_url=settings.bot_service_url,
            service_secret=settings.bot_service_secret,
            timeout_seconds=settings.bot_service_timeout_seconds,
        )

    def process_command(
        self,
        *,
        raw_body: bytes,
        timestamp: str | None,
        signature: str | None,
    ) -> StartBotResponse:
        self.verifier.verify_request(
            timestamp=timestamp,
            signature=signature,
            raw_body=raw_body,
            source="start_bot",
        )

        command = self._parse_command(raw_body)
        logger.info(
            "Bot start signal meeting_id=%s meeting_url=%s title=%s start_time=%s end_time=%s",
            command.meeting_id,
            command.meeting_url,
            command.title or "N/A",
            command.start_time or "N/A",
            command.end_time or "N/A",
        )

        forwarded = None
        if self.launch_client.is_configured:
            forwarded = self.launch_client.launch(command)
            logger.info(
                "Bot launch forwarded meeting_id=%s status=%s success=%s error=%s",
                command.meeting_id,
                forwarded.status,
                forwarded.success,
                forwarded.error,
            )
        else:
            logger.info("Bot service not configured, skipping forward meeting_id=%s", command.meeting_id)

        return StartBotResponse(
            message=f"Bot start signal received for {command.meeting_id}",
            meeting_id=command.meeting_id,
            received_at=datetime.now(UTC),
            forwarded=forwarded,
        )

    def _parse_command(self, raw_body: bytes) -> BotCommandPayload:
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed payload: request body must be valid JSON.",
            ) from exc

        if not isinstance(payload, Mapping):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed payload: request body must be a JSON object.",
            )

        meeting_url = self._to_text(payload.get("meetingUrl"))
        if not meeting_url:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing meetingUrl.",
            )
        meeting_id = self._to_text(payload.get("meetingId"))
        if not meeting_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing meetingId.",
            )

        return BotCommandPayload(
            meeting_id=meeting_id,
            meeting_url=meeting_url,
            title=self._to_text(payload.get("title")),
            start_time=self._to_text(payload.get("startTime")),
            end_time=self._to_text(payload.get("endTime")),
        )

    def _to_text(self, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            cleaned = value.strip()
            return cleaned or None
        if isinstance(value, int | float):
            return str(value)
        return None
