import logging
from collections.abc import Callable

from fastapi import HTTPException, status

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.services.signature_codec import current_time_ms, verify_signature

TIMESTAMP_HEADER = "x-webhook-timestamp"
SIGNATURE_HEADER = "x-webhook-signature"
UNAUTHORIZED_DETAIL = "Unauthorized."

logger = logging.getLogger(__name__)


class WebhookVerifier:
    """Shared signed-envelope check for every endpoint that accepts webhooks."""

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], int] = current_time_ms,
    ) -> None:
        self.secret = settings.webhook_signing_secret
        self.freshness_window_ms = settings.webhook_freshness_window_seconds * 1000
        self.clock = clock

    def verify_request(
        self,
        *,
        timestamp: str | None,
        signature: str | None,
        raw_body: bytes,
        source: str,
    ) -> None:
        if not timestamp or not signature:
            logger.warning(
                "Webhook rejected source=%s reason=missing_signature_headers has_timestamp=%s has_signature=%s",
                source,
                bool(timestamp),
                bool(signature),
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=UNAUTHORIZED_DETAIL,
            )

        if not self.secret:
            logger.error("Webhook rejected source=%s reason=signing_secret_not_configured", source)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error.",
            )

        now_ms = self.clock()
        is_valid = verify_signature(
            secret=self.secret,
            timestamp=timestamp,
            raw_body=raw_body,
            candidate_signature=signature.strip(),
            freshness_window_ms=self.freshness_window_ms,
            now_ms=now_ms,
        )
        if not is_valid:
            logger.warning(
                "Webhook rejected source=%s reason=verification_failed timestamp=%s now_ms=%s signature=%s",
                source,
                timestamp,
                now_ms,
                signature,
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=UNAUTHORIZED_DETAIL,
            )

        logger.info("Webhook signature verified source=%s", source)
