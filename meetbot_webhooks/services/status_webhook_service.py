import json
import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from fastapi import HTTPException, status

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.schemas.webhook import StatusEvent, StatusWebhookResponse
from meetbot_webhooks.services.recording_store import RecordingStore, create_recording_store
from meetbot_webhooks.services.status_reconciler import StatusReconciler
from meetbot_webhooks.services.sync_pipeline_client import SyncPipelineClient
from meetbot_webhooks.services.webhook_verifier import WebhookVerifier

logger = logging.getLogger(__name__)


class StatusWebhookService:
    def __init__(
        self,
        settings: Settings,
        store: RecordingStore | None = None,
        sync_client: SyncPipelineClient | None = None,
        verifier: WebhookVerifier | None = None,
    ) -> None:
        self.settings = settings
        self.verifier = verifier or WebhookVerifier(settings)
        self._store = store
        self._sync_client = sync_client

    def process_webhook(
        self,
        *,
        raw_body: bytes,
        timestamp: str | None,
        signature: str | None,
    ) -> StatusWebhookResponse:
        self.verifier.verify_request(
            timestamp=timestamp,
            signature=signature,
            raw_body=raw_body,
            source="status",
        )

        payload = self._parse_payload(raw_body)
        event = self._extract_event(payload)
        logger.info(
            "Status event dispatched bot_id=%s status=%s sub_code=%s",
            event.bot_id,
            event.status_code,
            event.sub_code,
        )
        return self._build_reconciler().reconcile(event)

    def _build_reconciler(self) -> StatusReconciler:
        # Built only after verification so unsigned requests never touch the store.
        settings = self.settings
        store = self._store or create_recording_store(
            store_name=settings.recordings_store,
            mongodb_uri=settings.mongodb_uri,
            mongodb_db_name=settings.mongodb_db_name,
            mongodb_collection_name=settings.mongodb_recordings_collection,
            mongodb_connect_timeout_ms=settings.mongodb_connect_timeout_ms,
        )
        sync_client = self._sync_client or SyncPipelineClient(
            api_url=settings.sync_recording_url,
            api_key=settings.sync_recording_api_key,
            timeout_seconds=settings.sync_recording_timeout_seconds,
        )
        return StatusReconciler(
            store=store,
            sync_client=sync_client,
            claim_lease=timedelta(seconds=settings.sync_claim_lease_seconds),
        )

    def _parse_payload(self, raw_body: bytes) -> Mapping[str, Any]:
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
        return payload

    def _extract_event(self, payload: Mapping[str, Any]) -> StatusEvent:
        # The provider sends either {event, data: {bot_id, status}} or a flat {bot_id, status}.
        bot_id = self._extract_first_string(payload, paths=("data.bot_id", "bot_id"))
        if not bot_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing bot_id.",
            )

        return StatusEvent(
            bot_id=bot_id,
            status_code=self._extract_first_string(
                payload,
                paths=("data.status.code", "status.code", "event"),
            ),
            sub_code=self._extract_first_string(
                payload,
                paths=("data.status.sub_code", "status.sub_code"),
            ),
        )

    def _extract_first_string(
        self,
        payload: Mapping[str, Any],
        paths: tuple[str, ...],
    ) -> str | None:
        for path in paths:
            value: Any = payload
            for segment in path.split("."):
                if not isinstance(value, Mapping):
                    value = None
                    break
                value = value.get(segment)
            if isinstance(value, int) and not isinstance(value, bool):
                return str(value)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None
