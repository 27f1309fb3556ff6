"""
Conversation resolver: find-or-create keyed by (contact_id, channel).
"""
import threading
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meta_relay.core.logging import get_logger
from meta_relay.models.conversation import Conversation
from meta_relay.models.enums import Channel
from meta_relay.models import message  # noqa: F401 - registers Message for the relationship

logger = get_logger(__name__)

# Serializes creation per key within this process through a fixed set of
# striped locks. The unique constraint on (contact_id, channel) covers other
# processes.
LOCK_STRIPES = 64
_creation_locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]


def _lock_for(contact_id: str, channel: Channel) -> threading.Lock:
    return _creation_locks[hash((contact_id, channel.value)) % LOCK_STRIPES]


class ConversationResolver:
    """Finds the conversation a contact belongs to, creating it on first contact."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, contact_id: str, channel: Channel) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.contact_id == contact_id, Conversation.channel == channel)
            .first()
        )

    def resolve(self, contact_id: str, channel: Channel) -> Conversation:
        """
        Return the conversation for (contact_id, channel), creating it if absent.

        Args:
            contact_id: Phone number or platform user id of the contact
            channel: Channel the conversation lives on

        Returns:
            The persisted Conversation
        """
        conversation = self.find(contact_id, channel)
        if conversation is not None:
            return conversation

        with _lock_for(contact_id, channel):
            conversation = self.find(contact_id, channel)
            if conversation is not None:
                return conversation

            conversation = Conversation(contact_id=contact_id, channel=channel, messages=[])
            try:
                self.db.add(conversation)
                self.db.commit()
            except IntegrityError:
                # Another process created it between our read and insert
                self.db.rollback()
                logger.info(
                    "Conversation created concurrently, reusing existing row",
                    extra={"extra_data": {"contact_id": contact_id, "channel": channel.value}}
                )
                return self.find(contact_id, channel)

            logger.info(
                "Conversation created",
                extra={
                    "extra_data": {
                        "conversation_id": conversation.id,
                        "contact_id": contact_id,
                        "channel": channel.value,
                    }
                }
            )
            return conversation
