"""
Enumerations shared by the ORM models, events and API schemas.
"""
import enum


class Channel(str, enum.Enum):
    """Messaging platform a conversation belongs to."""
    WHATSAPP = "WHATSAPP"
    MESSENGER = "MESSENGER"


class MessageDirection(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class MessageStatus(str, enum.Enum):
    """Lifecycle stage: PENDING -> SENT -> DELIVERED -> READ, or FAILED."""
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


class MessageType(str, enum.Enum):
    TEXT = "text"
    TEMPLATE = "template"
    IMAGE = "image"
    AUDIO = "audio"
    DOCUMENT = "document"
    VIDEO = "video"
    UNKNOWN = "unknown"


class ChannelPath(str, enum.Enum):
    """Channel names as they appear in URL paths."""
    whatsapp = "whatsapp"
    messenger = "messenger"

    @property
    def channel(self) -> Channel:
        return Channel[self.name.upper()]
