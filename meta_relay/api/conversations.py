"""
Conversation history endpoints.
"""
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException

from meta_relay.api.deps import get_message_store
from meta_relay.core.errors import ConversationNotFound
from meta_relay.core.logging import get_logger
from meta_relay.models.enums import ChannelPath
from meta_relay.schemas.message import ConversationSummary, ErrorResponse, MessageResponse
from meta_relay.services.message_store import MessageStore

logger = get_logger(__name__)

router = APIRouter(tags=["Conversations"])


@router.get(
    "/{channel}/conversations",
    response_model=List[ConversationSummary],
    summary="List conversations",
    description="Conversations on a channel, most recently active first."
)
async def list_conversations(
    channel: ChannelPath,
    store: Annotated[MessageStore, Depends(get_message_store)],
) -> List[ConversationSummary]:
    conversations = store.list_conversations(channel.channel)
    logger.debug(
        "Listed conversations",
        extra={"extra_data": {"channel": channel.value, "returned": len(conversations)}}
    )
    return conversations


@router.get(
    "/{channel}/conversations/{conversation_id}/messages",
    response_model=List[MessageResponse],
    responses={404: {"model": ErrorResponse, "description": "Conversation not found"}},
    summary="List conversation messages",
    description="Messages of a conversation ordered by timestamp ascending."
)
async def list_conversation_messages(
    channel: ChannelPath,
    conversation_id: str,
    store: Annotated[MessageStore, Depends(get_message_store)],
) -> List[MessageResponse]:
    try:
        messages = store.list_messages(conversation_id, channel.channel)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="conversation not found")

    return [MessageResponse.model_validate(message) for message in messages]
