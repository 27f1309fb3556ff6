"""
Outbound messaging endpoints.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from meta_relay.api.deps import get_graph_client, get_send_pipeline
from meta_relay.core.errors import GraphAPIError
from meta_relay.core.logging import get_logger
from meta_relay.models.enums import Channel
from meta_relay.schemas.message import (
    ErrorResponse,
    MessageResponse,
    SendErrorResponse,
    SendMessengerRequest,
    SendTemplateRequest,
    SendTemplateResponse,
    SendWhatsAppRequest,
)
from meta_relay.services.graph_client import GraphClient
from meta_relay.services.send_pipeline import SendPipeline

logger = get_logger(__name__)

router = APIRouter(tags=["Outbound"])

SEND_ERRORS = {
    400: {"model": SendErrorResponse, "description": "Recipient cannot receive the message"},
    502: {"model": SendErrorResponse, "description": "Provider failure"},
}


@router.post(
    "/whatsapp/send",
    response_model=MessageResponse,
    responses=SEND_ERRORS,
    summary="Send WhatsApp text message",
)
async def send_whatsapp(
    request: SendWhatsAppRequest,
    pipeline: Annotated[SendPipeline, Depends(get_send_pipeline)],
) -> MessageResponse:
    message = await pipeline.send(Channel.WHATSAPP, request.to, request.message)
    return MessageResponse.model_validate(message)


@router.post(
    "/whatsapp/send-template",
    response_model=SendTemplateResponse,
    responses=SEND_ERRORS,
    summary="Send WhatsApp template message",
    description="Sends an approved template and stores its rendered body text."
)
async def send_whatsapp_template(
    request: SendTemplateRequest,
    pipeline: Annotated[SendPipeline, Depends(get_send_pipeline)],
) -> SendTemplateResponse:
    result = await pipeline.send_template(
        request.to,
        request.template_name,
        request.language_code,
        request.components,
    )
    return SendTemplateResponse(**result)


@router.post(
    "/messenger/send",
    response_model=MessageResponse,
    responses=SEND_ERRORS,
    summary="Send Messenger text message",
)
async def send_messenger(
    request: SendMessengerRequest,
    pipeline: Annotated[SendPipeline, Depends(get_send_pipeline)],
) -> MessageResponse:
    message = await pipeline.send(Channel.MESSENGER, request.recipient_id, request.message)
    return MessageResponse.model_validate(message)


@router.get(
    "/whatsapp/templates",
    responses={502: {"model": ErrorResponse, "description": "Provider failure"}},
    summary="List WhatsApp templates",
    description="Returns the business account's template catalog as reported by the provider."
)
async def list_whatsapp_templates(
    graph: Annotated[GraphClient, Depends(get_graph_client)],
) -> dict:
    try:
        return await graph.fetch_whatsapp_templates()
    except GraphAPIError as e:
        logger.error(f"Failed to fetch WhatsApp templates: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch WhatsApp templates: {e}")
