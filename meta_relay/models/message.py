"""
Message database model.
"""
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from meta_relay.core.database import Base
from meta_relay.models.conversation import utcnow
from meta_relay.models.enums import MessageDirection, MessageStatus


class Message(Base):
    """A single message in the append-only ledger."""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Provider-assigned id (wamid.*, m_*) - deduplication and status key.
    # Outbound rows hold a local-* placeholder until the provider answers.
    message_id = Column(String(255), unique=True, nullable=False)

    content = Column(Text, nullable=False, default="")
    type = Column(String(20), nullable=False, default="text")
    sender = Column(String(64), nullable=False)

    direction = Column(Enum(MessageDirection, native_enum=False, length=16), nullable=False)
    status = Column(
        Enum(MessageStatus, native_enum=False, length=16),
        nullable=False,
        default=MessageStatus.PENDING,
    )
    failure_reason = Column(Text, nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_ts", "conversation_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Message(message_id={self.message_id}, status={self.status})>"
