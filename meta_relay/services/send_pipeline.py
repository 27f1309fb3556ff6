"""
Outbound send pipeline.

Every send is recorded before the provider is called:

    PENDING (local id) -> SENT (provider id) -> DELIVERED
    PENDING (local id) -> FAILED (with reason)
"""
import re
from typing import Any, Awaitable, Dict, List, Optional

from sqlalchemy.orm import Session

from meta_relay.core.config import MetaConfig
from meta_relay.core.errors import GraphAPIError, OutboundSendError, classify_provider_error
from meta_relay.core.logging import get_logger
from meta_relay.models.enums import Channel, MessageStatus, MessageType
from meta_relay.models.message import Message
from meta_relay.schemas.message import TemplateComponent
from meta_relay.services.graph_client import GraphClient
from meta_relay.services.interpreter import placeholder
from meta_relay.services.message_store import MessageStore, business_id_for

logger = get_logger(__name__)

TEMPLATE_VARIABLE = re.compile(r"\{\{\s*(\d+)\s*\}\}")


def extract_provider_message_id(channel: Channel, response: Dict[str, Any]) -> str:
    """Pull the provider-assigned id out of a send response."""
    try:
        if channel is Channel.WHATSAPP:
            return response["messages"][0]["id"]
        return response["message_id"]
    except (KeyError, IndexError, TypeError):
        raise GraphAPIError("Provider response did not include a message id", payload=response)


def find_template(catalog: Dict[str, Any], name: str, language_code: str) -> Optional[Dict[str, Any]]:
    """Locate a template by name, preferring the requested language."""
    data = catalog.get("data") if isinstance(catalog, dict) else None
    if not isinstance(data, list):
        return None
    candidates = [t for t in data if isinstance(t, dict) and t.get("name") == name]
    for template in candidates:
        if template.get("language") == language_code:
            return template
    return candidates[0] if candidates else None


def body_parameters(components: List[TemplateComponent]) -> List[str]:
    for component in components:
        if component.type.lower() == "body":
            return [parameter.text for parameter in component.parameters]
    return []


def render_template_body(template: Dict[str, Any], parameters: List[str]) -> Optional[str]:
    """
    Substitute {{1}}, {{2}}, ... in the template BODY with positional parameters.

    Variables without a matching parameter are left as they are.
    """
    body = next(
        (c.get("text") for c in template.get("components", []) if str(c.get("type", "")).upper() == "BODY"),
        None,
    )
    if body is None:
        return None

    def substitute(match: re.Match) -> str:
        index = int(match.group(1))
        if 1 <= index <= len(parameters):
            return parameters[index - 1]
        return match.group(0)

    return TEMPLATE_VARIABLE.sub(substitute, body)


class SendPipeline:
    """Sends outbound messages and keeps the local record in step with the provider."""

    def __init__(self, db: Session, graph: GraphClient, config: MetaConfig):
        self.config = config
        self.graph = graph
        self.store = MessageStore(db, config)

    async def send(self, channel: Channel, recipient_id: str, content: str) -> Message:
        """
        Send a text message and return the stored record.

        Raises:
            OutboundSendError: the provider refused the message or could not be reached
        """
        logger.info(
            "Sending outbound message",
            extra={"extra_data": {"channel": channel.value, "recipient_id": recipient_id}}
        )
        conversation = self.store.conversations.resolve(recipient_id, channel)
        message = self.store.create_outbound(conversation, business_id_for(channel, self.config), content)

        if channel is Channel.WHATSAPP:
            request = self.graph.send_whatsapp_text(recipient_id, content)
        else:
            request = self.graph.send_messenger_text(recipient_id, content)

        return await self._dispatch(channel, message, request)

    async def send_template(
        self,
        recipient_id: str,
        template_name: str,
        language_code: str,
        components: List[TemplateComponent],
    ) -> Dict[str, str]:
        """
        Send a WhatsApp template, storing its rendered text as the content.

        Returns:
            {"message_id": <provider id>}
        """
        content = await self.resolve_template_text(template_name, language_code, components)

        conversation = self.store.conversations.resolve(recipient_id, Channel.WHATSAPP)
        message = self.store.create_outbound(
            conversation,
            business_id_for(Channel.WHATSAPP, self.config),
            content,
            msg_type=MessageType.TEMPLATE,
        )

        request = self.graph.send_whatsapp_template(
            recipient_id,
            template_name,
            language_code,
            [component.model_dump() for component in components],
        )
        message = await self._dispatch(Channel.WHATSAPP, message, request)
        return {"message_id": message.message_id}

    async def resolve_template_text(
        self,
        template_name: str,
        language_code: str,
        components: List[TemplateComponent],
    ) -> str:
        """Human-readable text of a template, or a placeholder when the catalog cannot tell."""
        fallback = placeholder(MessageType.TEMPLATE.value, template_name)

        try:
            catalog = await self.graph.fetch_whatsapp_templates()
        except GraphAPIError as e:
            logger.warning(
                f"Template catalog unavailable, storing placeholder: {e}",
                extra={"extra_data": {"template": template_name}}
            )
            return fallback

        template = find_template(catalog, template_name, language_code)
        if template is None:
            logger.warning(
                "Template not found in catalog",
                extra={"extra_data": {"template": template_name, "language": language_code}}
            )
            return fallback

        text = render_template_body(template, body_parameters(components))
        return text if text is not None else fallback

    async def _dispatch(self, channel: Channel, message: Message, request: Awaitable[Dict[str, Any]]) -> Message:
        local_id = message.message_id
        try:
            response = await request
            provider_message_id = extract_provider_message_id(channel, response)
        except GraphAPIError as e:
            kind, reason = classify_provider_error(e.code, e.message)
            self.store.mark_failed(message, reason)
            logger.error(
                "Outbound message failed",
                extra={
                    "extra_data": {
                        "message_id": local_id,
                        "channel": channel.value,
                        "provider_code": e.code,
                        "error": kind.value,
                    }
                }
            )
            raise OutboundSendError(kind, reason, message_id=local_id, provider_code=e.code) from e

        message = self.store.mark_sent(message, provider_message_id)
        logger.info(
            "Outbound message sent",
            extra={"extra_data": {"local_id": local_id, "message_id": provider_message_id}}
        )

        # No delivery webhook is guaranteed for business-initiated sends
        self.store.apply_status(provider_message_id, MessageStatus.DELIVERED)
        return message
