"""
Normalized webhook events produced by the channel interpreters.
"""
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel

from meta_relay.models.enums import MessageStatus, MessageType


class IncomingMessage(BaseModel):
    """A message seen on the webhook, sent by a contact or echoed from the business."""

    kind: Literal["message"] = "message"
    sender_id: str
    recipient_id: Optional[str] = None
    provider_message_id: str
    type: MessageType = MessageType.TEXT
    content: str = ""
    timestamp: datetime


class StatusUpdate(BaseModel):
    """A provider report that a known message changed status."""

    kind: Literal["status"] = "status"
    provider_message_id: str
    recipient_id: Optional[str] = None
    new_status: MessageStatus
    error_reason: Optional[str] = None


WebhookEvent = Union[IncomingMessage, StatusUpdate]
