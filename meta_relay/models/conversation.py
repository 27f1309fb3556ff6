"""
Conversation database model.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.orm import relationship

from meta_relay.core.database import Base
from meta_relay.models.enums import Channel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    """All messages exchanged with one contact over one channel."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Phone number (WhatsApp) or page-scoped user id (Messenger)
    contact_id = Column(String(64), nullable=False, index=True)
    channel = Column(Enum(Channel, native_enum=False, length=16), nullable=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.timestamp",
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("contact_id", "channel", name="uq_conversations_contact_channel"),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, contact_id={self.contact_id}, channel={self.channel})>"
