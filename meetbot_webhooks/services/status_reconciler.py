"""Turns provider status events into recording status writes and sync triggers.

Deliveries arrive at least once, unordered and possibly concurrently, so every
decision is taken against a fresh read of the recording and every write is
conditional on the recording not being ``done``:

1. status-only codes move the stored status forward unless it is ``done``;
2. sync-triggering codes start the import pipeline only after winning an
   atomic, leased claim on the recording. A duplicate that arrives while the
   claim is held is acknowledged without a second invocation;
3. a failed invocation releases the claim so that the provider's redelivery
   can retry. Status already written is never rolled back.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from meetbot_webhooks.schemas.webhook import StatusEvent, StatusWebhookResponse
from meetbot_webhooks.services.provider_status import (
    RecordingStatus,
    StatusOnly,
    SyncTrigger,
    classify_status_code,
)
from meetbot_webhooks.services.recording_store import RecordingStore
from meetbot_webhooks.services.sync_pipeline_client import SyncPipelineClient, SyncPipelineError

logger = logging.getLogger(__name__)


class StatusReconciler:
    def __init__(
        self,
        store: RecordingStore,
        sync_client: SyncPipelineClient,
        claim_lease: timedelta = timedelta(seconds=120),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.sync_client = sync_client
        self.claim_lease = claim_lease
        self.clock = clock or (lambda: datetime.now(UTC))

    def reconcile(self, event: StatusEvent) -> StatusWebhookResponse:
        recording = self.store.get_by_bot_id(event.bot_id)
        if not recording:
            logger.warning("No recording found bot_id=%s status=%s", event.bot_id, event.status_code)
            return StatusWebhookResponse(skipped=True)

        recording_id = str(recording["_id"])
        current_status = recording.get("status")
        logger.info(
            "Recording found recording_id=%s current_status=%s status=%s sub_code=%s",
            recording_id,
            current_status,
            event.status_code,
            event.sub_code,
        )

        provider_status = classify_status_code(event.status_code)
        if isinstance(provider_status, StatusOnly):
            self._apply_intermediate_status(recording_id, provider_status)
            return StatusWebhookResponse(action="status_noted")

        if not isinstance(provider_status, SyncTrigger):
            logger.info(
                "Unrecognized status acknowledged recording_id=%s status=%s",
                recording_id,
                event.status_code,
            )
            return StatusWebhookResponse(action="status_noted")

        if current_status == RecordingStatus.done:
            logger.info("Recording already done recording_id=%s, skipping sync", recording_id)
            return StatusWebhookResponse(action="already_done")

        return self._trigger_sync(recording_id)

    def _apply_intermediate_status(self, recording_id: str, provider_status: StatusOnly) -> None:
        if provider_status.internal_status is None:
            return
        updated = self.store.update_status_unless(
            recording_id,
            status=provider_status.internal_status.value,
            blocked_status=RecordingStatus.done.value,
        )
        if updated:
            logger.info(
                "Recording status updated recording_id=%s status=%s code=%s",
                recording_id,
                provider_status.internal_status.value,
                provider_status.code,
            )
        else:
            logger.info(
                "Recording status left unchanged recording_id=%s code=%s",
                recording_id,
                provider_status.code,
            )

    def _trigger_sync(self, recording_id: str) -> StatusWebhookResponse:
        now = self.clock()
        claimed = self.store.claim_sync(
            recording_id,
            now=now,
            lease_until=now + self.claim_lease,
            blocked_status=RecordingStatus.done.value,
        )
        if not claimed:
            return self._describe_lost_claim(recording_id)

        logger.info("Triggering sync recording_id=%s", recording_id)
        try:
            result = self.sync_client.trigger_sync(recording_id)
        except SyncPipelineError as exc:
            self.store.release_sync_claim(recording_id)
            logger.error("Sync invocation failed recording_id=%s error=%s", recording_id, exc)
            return StatusWebhookResponse(
                ok=False,
                action="sync_failed",
                recording_id=recording_id,
                error=str(exc),
            )

        logger.info(
            "Sync invocation finished recording_id=%s status_code=%s body=%s",
            recording_id,
            result.status_code,
            result.body,
        )
        if not result.ok:
            self.store.release_sync_claim(recording_id)

        return StatusWebhookResponse(
            action="sync_triggered",
            recording_id=recording_id,
            sync_status=result.status_code,
        )

    def _describe_lost_claim(self, recording_id: str) -> StatusWebhookResponse:
        refreshed: dict[str, Any] | None = self.store.get_by_id(recording_id)
        if refreshed and refreshed.get("status") == RecordingStatus.done:
            logger.info("Recording finished concurrently recording_id=%s", recording_id)
            return StatusWebhookResponse(action="already_done")

        logger.info("Sync already claimed recording_id=%s, skipping duplicate", recording_id)
        return StatusWebhookResponse(action="sync_in_progress", recording_id=recording_id)
