"""
Message store: the append-only message ledger and its status reconciler.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from meta_relay.core.config import MetaConfig
from meta_relay.core.errors import ConversationNotFound
from meta_relay.core.logging import get_logger
from meta_relay.models.conversation import Conversation, utcnow
from meta_relay.models.enums import Channel, MessageDirection, MessageStatus, MessageType
from meta_relay.models.message import Message
from meta_relay.schemas.events import IncomingMessage
from meta_relay.schemas.message import ConversationSummary
from meta_relay.services.conversations import ConversationResolver

logger = get_logger(__name__)

LOCAL_ID_PREFIX = "local-"

# WhatsApp only reports messages that reached us. Messenger inbound rows
# start PENDING and are upgraded by later delivery/read events.
INBOUND_STATUS = {
    Channel.WHATSAPP: MessageStatus.DELIVERED,
    Channel.MESSENGER: MessageStatus.PENDING,
}


def classify_direction(sender_id: Optional[str], business_id: Optional[str]) -> MessageDirection:
    """
    Messages sent by the business itself are OUTBOUND, everything else INBOUND.

    Providers echo the business's own sends through the inbound webhook.
    """
    if business_id and sender_id == business_id:
        return MessageDirection.OUTBOUND
    return MessageDirection.INBOUND


def business_id_for(channel: Channel, config: MetaConfig) -> str:
    """Identifier the business uses as sender on the given channel."""
    if channel is Channel.WHATSAPP:
        return config.whatsapp_business_number
    return config.page_id


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_local_message_id() -> str:
    """Placeholder id held by an outbound message until the provider assigns one."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4()}"


class MessageStore:
    """Persists messages and reconciles status updates against them."""

    def __init__(self, db: Session, config: MetaConfig):
        self.db = db
        self.config = config
        self.conversations = ConversationResolver(db)

    def get_by_message_id(self, provider_message_id: str) -> Optional[Message]:
        return self.db.query(Message).filter(Message.message_id == provider_message_id).first()

    def record_incoming(self, event: IncomingMessage, channel: Channel) -> Optional[Message]:
        """
        Store a message seen on the webhook exactly once.

        Returns:
            The new Message, or None when the provider id was already stored
        """
        if self.get_by_message_id(event.provider_message_id) is not None:
            logger.info(
                "Duplicate message received, skipping",
                extra={"extra_data": {"message_id": event.provider_message_id, "channel": channel.value}}
            )
            return None

        business_id = business_id_for(channel, self.config)
        direction = classify_direction(event.sender_id, business_id)

        # Echoes of our own sends belong to the contact they were sent to
        contact_id = event.sender_id
        if direction is MessageDirection.OUTBOUND and event.recipient_id and event.recipient_id != business_id:
            contact_id = event.recipient_id

        conversation = self.conversations.resolve(contact_id, channel)

        message = Message(
            message_id=event.provider_message_id,
            content=event.content,
            type=event.type.value,
            sender=event.sender_id,
            direction=direction,
            status=INBOUND_STATUS[channel],
            timestamp=event.timestamp,
            conversation=conversation,
        )
        conversation.updated_at = utcnow()

        try:
            self.db.add(message)
            self.db.commit()
        except IntegrityError:
            # Redelivery raced us to the insert
            self.db.rollback()
            logger.info(
                "Duplicate message detected via constraint",
                extra={"extra_data": {"message_id": event.provider_message_id}}
            )
            return None

        logger.info(
            "Message recorded",
            extra={
                "extra_data": {
                    "message_id": message.message_id,
                    "conversation_id": conversation.id,
                    "direction": direction.value,
                    "type": message.type,
                }
            }
        )
        return message

    def apply_status(
        self,
        provider_message_id: str,
        new_status: MessageStatus,
        error_reason: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Overwrite the status of a known message.

        The last update applied wins, whatever the current status is. Updates
        for messages we have never seen are dropped.
        """
        message = self.get_by_message_id(provider_message_id)
        if message is None:
            logger.warning(
                "Status update for unknown message ignored",
                extra={"extra_data": {"message_id": provider_message_id, "status": new_status.value}}
            )
            return None

        previous = message.status
        message.status = new_status
        if error_reason:
            message.failure_reason = error_reason
        self.db.commit()

        logger.info(
            "Message status updated",
            extra={
                "extra_data": {
                    "message_id": provider_message_id,
                    "from_status": previous.value if previous else None,
                    "to_status": new_status.value,
                }
            }
        )
        return message

    def create_outbound(
        self,
        conversation: Conversation,
        sender: str,
        content: str,
        msg_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Persist a PENDING outbound message under a local placeholder id."""
        message = Message(
            message_id=new_local_message_id(),
            content=content,
            type=msg_type.value,
            sender=sender,
            direction=MessageDirection.OUTBOUND,
            status=MessageStatus.PENDING,
            timestamp=utcnow(),
            conversation=conversation,
        )
        conversation.updated_at = utcnow()
        self.db.add(message)
        self.db.commit()
        logger.info(
            "Outbound message created as PENDING",
            extra={"extra_data": {"id": message.id, "message_id": message.message_id}}
        )
        return message

    def mark_sent(self, message: Message, provider_message_id: str) -> Message:
        """
        Move a PENDING outbound message to SENT under its provider id.

        When the provider's echo of this send was already recorded under that
        id, the echoed row is kept and the local placeholder is removed.

        Returns:
            The row that now holds the provider id
        """
        message.message_id = provider_message_id
        message.status = MessageStatus.SENT
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            stored = self.get_by_message_id(provider_message_id)
            if stored is None:
                raise

            stored.content = message.content
            stored.type = message.type
            stored.sender = message.sender
            stored.direction = MessageDirection.OUTBOUND
            stored.status = MessageStatus.SENT
            stored.conversation_id = message.conversation_id
            local_id = message.message_id
            self.db.delete(message)
            self.db.commit()
            logger.info(
                "Echo recorded before send completed, placeholder merged",
                extra={"extra_data": {"local_id": local_id, "message_id": provider_message_id}}
            )
            return stored
        return message

    def mark_failed(self, message: Message, reason: str) -> Message:
        message.status = MessageStatus.FAILED
        message.failure_reason = reason
        self.db.commit()
        return message

    def list_conversations(self, channel: Channel) -> List[ConversationSummary]:
        """Conversations on a channel, most recently active first."""
        conversations = (
            self.db.query(Conversation)
            .options(selectinload(Conversation.messages))
            .filter(Conversation.channel == channel)
            .all()
        )

        summaries = []
        for conversation in conversations:
            last = max(conversation.messages, key=lambda m: _as_utc(m.timestamp), default=None)
            summaries.append(
                ConversationSummary(
                    id=conversation.id,
                    contact_id=conversation.contact_id,
                    channel=conversation.channel,
                    last_message=last.content if last else None,
                    last_activity=_as_utc(last.timestamp if last else conversation.updated_at),
                )
            )

        summaries.sort(key=lambda s: s.last_activity, reverse=True)
        return summaries

    def list_messages(self, conversation_id: str, channel: Channel) -> List[Message]:
        """
        Messages of one conversation in chronological order.

        Raises:
            ConversationNotFound: unknown id, or the conversation is on another channel
        """
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None or conversation.channel != channel:
            logger.warning(
                "Conversation not found",
                extra={"extra_data": {"conversation_id": conversation_id, "channel": channel.value}}
            )
            raise ConversationNotFound(conversation_id)

        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.asc(), Message.created_at.asc())
            .all()
        )
