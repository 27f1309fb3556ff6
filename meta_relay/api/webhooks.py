"""
Webhook endpoints for WhatsApp and Messenger.
"""
import json
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from meta_relay.api.deps import get_meta_config
from meta_relay.core.config import MetaConfig, Settings, get_settings
from meta_relay.core.database import get_db
from meta_relay.core.logging import get_logger
from meta_relay.core.security import get_validated_body, verify_subscription
from meta_relay.models.enums import ChannelPath
from meta_relay.schemas.message import ErrorResponse, WebhookResponse
from meta_relay.services.webhook_processor import process_webhook

logger = get_logger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.get(
    "/{channel}/webhook",
    response_class=PlainTextResponse,
    responses={403: {"model": ErrorResponse, "description": "Verification failed"}},
    summary="Verify webhook subscription",
    description="Echoes hub.challenge when hub.verify_token matches the configured token."
)
async def verify_webhook(
    channel: ChannelPath,
    settings: Annotated[Settings, Depends(get_settings)],
    mode: Annotated[Optional[str], Query(alias="hub.mode")] = None,
    token: Annotated[Optional[str], Query(alias="hub.verify_token")] = None,
    challenge: Annotated[Optional[str], Query(alias="hub.challenge")] = None,
) -> PlainTextResponse:
    answer = verify_subscription(mode, token, challenge, settings.meta_webhook_verify_token)
    if answer is None:
        logger.warning("Webhook verification failed", extra={"extra_data": {"channel": channel.value}})
        raise HTTPException(status_code=403, detail="verification failed")

    logger.info("Webhook verified", extra={"extra_data": {"channel": channel.value}})
    return PlainTextResponse(answer)


@router.post(
    "/{channel}/webhook",
    response_model=WebhookResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid signature"}},
    summary="Receive webhook events",
    description="Receive message and status events. Requires a valid X-Hub-Signature-256 header."
)
async def receive_webhook(
    channel: ChannelPath,
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    db: Annotated[Session, Depends(get_db)],
    config: Annotated[MetaConfig, Depends(get_meta_config)],
) -> WebhookResponse:
    """
    Receive provider events.

    - Validates the signature (via dependency)
    - Acknowledges with 200 whatever the payload contains, so the provider
      does not redeliver
    """
    try:
        payload = json.loads(validated_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Invalid JSON in webhook request: {e}", extra={"extra_data": {"channel": channel.value}})
        return WebhookResponse()

    try:
        process_webhook(db, channel.channel, payload, config)
    except Exception:
        logger.exception("Webhook processing failed", extra={"extra_data": {"channel": channel.value}})
    return WebhookResponse()
