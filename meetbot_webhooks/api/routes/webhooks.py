import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import APIRouter, HTTPException, Request, Response, status

from meetbot_webhooks.core.config import get_settings
from meetbot_webhooks.schemas.webhook import (
    BotTriggerBatchResponse,
    StartBotResponse,
    StatusWebhookResponse,
    WebhookTokenResponse,
)
from meetbot_webhooks.services.bot_command_service import BotCommandService
from meetbot_webhooks.services.bot_webhook_trigger import create_bot_webhook_trigger
from meetbot_webhooks.services.status_webhook_service import StatusWebhookService
from meetbot_webhooks.services.webhook_token_service import WebhookTokenService
from meetbot_webhooks.services.webhook_verifier import SIGNATURE_HEADER, TIMESTAMP_HEADER

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

_ResponseT = TypeVar("_ResponseT")


@router.post(
    "/status",
    response_model=StatusWebhookResponse,
    response_model_exclude_none=True,
)
async def receive_status_webhook(request: Request, response: Response) -> StatusWebhookResponse:
    raw_body = await request.body()
    logger.info(
        "Webhook received endpoint=status path=%s body_length=%s has_signature=%s",
        str(request.url.path),
        len(raw_body),
        bool(request.headers.get(SIGNATURE_HEADER)),
    )
    result = _run_guarded(
        "status",
        lambda: StatusWebhookService(get_settings()).process_webhook(
            raw_body=raw_body,
            timestamp=request.headers.get(TIMESTAMP_HEADER),
            signature=request.headers.get(SIGNATURE_HEADER),
        ),
    )
    if result.action == "sync_failed":
        response.status_code = status.HTTP_502_BAD_GATEWAY
    logger.info(
        "Webhook processed endpoint=status action=%s skipped=%s recording_id=%s sync_status=%s",
        result.action,
        result.skipped,
        result.recording_id,
        result.sync_status,
    )
    return result


@router.post("/start-bot", response_model=StartBotResponse)
async def receive_start_bot_webhook(request: Request) -> StartBotResponse:
    raw_body = await request.body()
    logger.info(
        "Webhook received endpoint=start_bot path=%s body_length=%s has_signature=%s",
        str(request.url.path),
        len(raw_body),
        bool(request.headers.get(SIGNATURE_HEADER)),
    )
    return _run_guarded(
        "start_bot",
        lambda: BotCommandService(get_settings()).process_command(
            raw_body=raw_body,
            timestamp=request.headers.get(TIMESTAMP_HEADER),
            signature=request.headers.get(SIGNATURE_HEADER),
        ),
    )


@router.post("/token", response_model=WebhookTokenResponse)
async def issue_webhook_token(request: Request) -> WebhookTokenResponse:
    service = WebhookTokenService(get_settings())
    service.authorize_caller(_extract_api_key(request))
    raw_body = await request.body()

    def issue() -> WebhookTokenResponse:
        try:
            body = json.loads(raw_body or b"{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request body must be valid JSON.",
            ) from exc
        payload_string = body.get("payloadString") if isinstance(body, dict) else None
        return service.issue_token(payload_string)

    return _run_guarded("token", issue)


@router.post("/trigger-bot", response_model=BotTriggerBatchResponse)
async def trigger_bot_for_events(request: Request) -> BotTriggerBatchResponse:
    settings = get_settings()
    WebhookTokenService(settings).authorize_caller(_extract_api_key(request))
    raw_body = await request.body()

    def trigger() -> BotTriggerBatchResponse:
        events = _parse_calendar_events(raw_body)
        results = create_bot_webhook_trigger(settings).trigger_upcoming(events)
        return BotTriggerBatchResponse(results=results)

    return _run_guarded("trigger_bot", trigger)


def _run_guarded(endpoint: str, handler: Callable[[], _ResponseT]) -> _ResponseT:
    try:
        return handler()
    except HTTPException as exc:
        logger.warning(
            "Webhook rejected endpoint=%s status_code=%s detail=%s",
            endpoint,
            exc.status_code,
            exc.detail,
        )
        raise
    except Exception as exc:
        logger.exception("Webhook processing failed endpoint=%s", endpoint)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error.",
        ) from exc


def _parse_calendar_events(raw_body: bytes) -> list[dict[str, Any]]:
    try:
        body = json.loads(raw_body or b"{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON.",
        ) from exc

    events = body.get("events") if isinstance(body, dict) else None
    if not isinstance(events, list) or not all(isinstance(event, dict) for event in events):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing events in request body.",
        )
    if not all(str(event.get("id") or "").strip() for event in events):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Every event requires an id.",
        )
    return events


def _extract_api_key(request: Request) -> str | None:
    x_api_key = request.headers.get("x-api-key")
    if x_api_key:
        return x_api_key.strip()

    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    auth_scheme, _, auth_token = authorization.partition(" ")
    if auth_scheme.lower() != "bearer":
        return None

    token = auth_token.strip()
    return token or None
