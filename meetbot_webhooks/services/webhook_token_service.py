import hmac
import logging
from collections.abc import Callable

from fastapi import HTTPException, status

from meetbot_webhooks.core.config import Settings
from meetbot_webhooks.schemas.webhook import WebhookTokenResponse
from meetbot_webhooks.services.signature_codec import current_time_ms, sign_payload

logger = logging.getLogger(__name__)


class WebhookTokenService:
    """Signs payload strings for trusted callers about to send a webhook themselves.

    The payload is signed exactly as received. Re-serializing it here could
    reorder keys or change whitespace and the receiver would reject the result.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], int] = current_time_ms,
    ) -> None:
        self.settings = settings
        self.clock = clock

    def authorize_caller(self, api_key: str | None) -> None:
        expected_key = self.settings.webhook_token_api_key
        if not expected_key:
            logger.error("Webhook token request rejected reason=api_key_not_configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error.",
            )
        if not api_key or not hmac.compare_digest(
            api_key.encode("utf-8"),
            expected_key.encode("utf-8"),
        ):
            logger.warning("Webhook token request rejected reason=invalid_api_key")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized.",
            )

    def issue_token(self, payload_string: object) -> WebhookTokenResponse:
        secret = self.settings.webhook_signing_secret
        if not secret:
            logger.error("Webhook token request rejected reason=signing_secret_not_configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error.",
            )

        if not isinstance(payload_string, str) or not payload_string:
            logger.warning("Webhook token request rejected reason=missing_payload_string")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing payloadString in request body.",
            )

        now_ms = self.clock()
        timestamp = str(now_ms)
        signature = sign_payload(secret, timestamp, payload_string)
        logger.info("Webhook token issued payload_length=%s", len(payload_string))
        return WebhookTokenResponse(
            signature=signature,
            timestamp=timestamp,
            expires_at=now_ms + self.settings.webhook_token_ttl_seconds * 1000,
        )
