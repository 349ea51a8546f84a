import json
import logging
import re
from collections.abc import Mapping
from typing import Any
from urllib import error, request

from fastapi import HTTPException

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.schemas.webhook import BotTriggerResult
from meetbot_webhooks.services.triggered_meeting_cache import (
    TriggeredMeetingCache,
    get_triggered_meeting_cache,
)
from meetbot_webhooks.services.webhook_token_service import WebhookTokenService
from meetbot_webhooks.services.webhook_verifier import SIGNATURE_HEADER, TIMESTAMP_HEADER

_URL_PATTERN = re.compile(r"https?://[^\s]+")

logger = logging.getLogger(__name__)


class BotTriggerError(Exception):
    pass


def extract_meeting_url(event: Mapping[str, Any]) -> str | None:
    for key in ("meetingUrl", "hangoutLink"):
        value = event.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    for key in ("location", "description"):
        value = event.get(key)
        if not isinstance(value, str):
            continue
        match = _URL_PATTERN.search(value)
        if match:
            return match.group(0)
    return None


class BotWebhookTrigger:
    """Sends signed start-bot commands for upcoming calendar events."""

    def __init__(
        self,
        *,
        start_bot_url: str,
        token_service: WebhookTokenService,
        cache: TriggeredMeetingCache | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.start_bot_url = start_bot_url.strip()
        self.token_service = token_service
        self.cache = cache or TriggeredMeetingCache()
        self.timeout_seconds = timeout_seconds

    def trigger(self, event: Mapping[str, Any]) -> BotTriggerResult:
        meeting_id = str(event.get("id") or "").strip()
        if not meeting_id:
            raise ValueError("Calendar event is missing an id.")

        if self.cache.contains(meeting_id):
            logger.info("Bot already triggered meeting_id=%s", meeting_id)
            return BotTriggerResult(meeting_id=meeting_id, status="already_triggered")

        meeting_url = extract_meeting_url(event)
        # Marked even without a URL so the same event does not warn on every poll.
        self.cache.mark(meeting_id)
        if not meeting_url:
            logger.warning("No meeting URL found meeting_id=%s title=%s", meeting_id, event.get("summary"))
            return BotTriggerResult(meeting_id=meeting_id, status="no_meeting_url")

        payload_string = json.dumps(
            {
                "meetingId": meeting_id,
                "meetingUrl": meeting_url,
                "title": event.get("summary"),
                "startTime": event.get("start"),
                "endTime": event.get("end"),
            },
        )

        try:
            response_payload = self._send_signed(payload_string)
        except BotTriggerError as exc:
            self.cache.discard(meeting_id)
            logger.error("Bot trigger failed meeting_id=%s error=%s", meeting_id, exc)
            return BotTriggerResult(
                meeting_id=meeting_id,
                status="failed",
                meeting_url=meeting_url,
                error=str(exc),
            )

        logger.info("Bot triggered meeting_id=%s meeting_url=%s", meeting_id, meeting_url)
        return BotTriggerResult(
            meeting_id=meeting_id,
            status="triggered",
            meeting_url=meeting_url,
            response=response_payload,
        )

    def trigger_upcoming(self, events: list[Mapping[str, Any]]) -> list[BotTriggerResult]:
        """Trigger every event, then forget meetings no longer in ``events``."""
        results = [self.trigger(event) for event in events]
        self.forget_missing([result.meeting_id for result in results])
        return results

    def forget_missing(self, current_meeting_ids: list[str]) -> None:
        self.cache.retain_only(current_meeting_ids)

    def _send_signed(self, payload_string: str) -> dict[str, Any]:
        if not self.start_bot_url:
            raise BotTriggerError("Start-bot webhook URL is not configured.")

        try:
            token = self.token_service.issue_token(payload_string)
        except HTTPException as exc:
            raise BotTriggerError(f"Unable to obtain webhook token: {exc.detail}") from exc

        req = request.Request(
            self.start_bot_url,
            data=payload_string.encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                TIMESTAMP_HEADER: token.timestamp,
                SIGNATURE_HEADER: token.signature,
            },
            method="POST",
        )

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise BotTriggerError(
                f"Start-bot webhook HTTP {exc.code}: {body or 'empty response body'}"
            ) from exc
        except error.URLError as exc:
            raise BotTriggerError(f"Start-bot webhook connection error: {exc.reason}") from exc

        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BotTriggerError("Start-bot webhook returned invalid JSON.") from exc

        if not isinstance(parsed_body, dict):
            raise BotTriggerError("Start-bot webhook returned an unexpected payload.")
        return parsed_body


def create_bot_webhook_trigger(settings: Settings) -> BotWebhookTrigger:
    return BotWebhookTrigger(
        start_bot_url=settings.start_bot_webhook_url,
        token_service=WebhookTokenService(settings),
        cache=get_triggered_meeting_cache(settings.trigger_cache_ttl_hours),
        timeout_seconds=settings.bot_service_timeout_seconds,
    )
