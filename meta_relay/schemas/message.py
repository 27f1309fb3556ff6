"""
Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from meta_relay.models.enums import Channel, MessageDirection, MessageStatus


class SendWhatsAppRequest(BaseModel):
    """Request schema for POST /whatsapp/send."""

    to: str = Field(..., min_length=1, max_length=32, description="Recipient phone number")
    message: str = Field(..., min_length=1, max_length=4096, description="Message text")

    model_config = {
        "json_schema_extra": {
            "example": {"to": "15550002", "message": "Hi"}
        }
    }


class SendMessengerRequest(BaseModel):
    """Request schema for POST /messenger/send."""

    recipient_id: str = Field(..., min_length=1, max_length=64, description="Page-scoped user id")
    message: str = Field(..., min_length=1, max_length=2000, description="Message text")


class TemplateParameter(BaseModel):
    type: str = Field(default="text")
    text: str


class TemplateComponent(BaseModel):
    type: str = Field(default="body", description="Template component the parameters fill")
    parameters: List[TemplateParameter] = Field(default_factory=list)


class SendTemplateRequest(BaseModel):
    """Request schema for POST /whatsapp/send-template."""

    to: str = Field(..., min_length=1, max_length=32)
    template_name: str = Field(..., min_length=1, max_length=512)
    language_code: str = Field(default="en_US", min_length=2, max_length=16)
    components: List[TemplateComponent] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "example": {
                "to": "15550002",
                "template_name": "order_update",
                "language_code": "en_US",
                "components": [
                    {"type": "body", "parameters": [{"type": "text", "text": "Ana"}]}
                ],
            }
        }
    }


class SendTemplateResponse(BaseModel):
    message_id: str


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider."""
    status: str = Field(default="ok")


class MessageResponse(BaseModel):
    """Schema for a single stored message."""
    id: str
    message_id: str
    content: str
    type: str
    sender: str
    direction: MessageDirection
    status: MessageStatus
    failure_reason: Optional[str] = None
    timestamp: datetime
    conversation_id: str

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    """Conversation list entry with its latest activity."""
    id: str
    contact_id: str
    channel: Channel
    last_message: Optional[str] = None
    last_activity: Optional[datetime] = None


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str


class SendErrorResponse(BaseModel):
    """Error returned when the provider refused an outbound message."""
    detail: str
    error: str
    message_id: Optional[str] = None
    provider_code: Optional[int] = None
