"""
Webhook interpreters: turn provider payloads into normalized events.

Each channel has one interpreter. Interpreters never raise on bad input;
whatever part of a payload cannot be understood is logged and skipped, since
the webhook endpoint must acknowledge every delivery.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from meta_relay.core.logging import get_logger
from meta_relay.models.enums import Channel, MessageStatus, MessageType
from meta_relay.schemas.events import IncomingMessage, StatusUpdate, WebhookEvent

logger = get_logger(__name__)

# Message types stored as "[TYPE] <reference>" instead of text
PLACEHOLDER_TYPES = {
    MessageType.TEMPLATE.value,
    MessageType.IMAGE.value,
    MessageType.AUDIO.value,
    MessageType.DOCUMENT.value,
    MessageType.VIDEO.value,
}

# Messenger calls documents "file"
MESSENGER_ATTACHMENT_TYPES = {
    "image": MessageType.IMAGE,
    "audio": MessageType.AUDIO,
    "video": MessageType.VIDEO,
    "file": MessageType.DOCUMENT,
}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _from_epoch(value: Any, divisor: int = 1) -> datetime:
    """Parse an epoch timestamp, falling back to now when absent or garbled."""
    try:
        return datetime.fromtimestamp(int(value) / divisor, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc)


def placeholder(kind: str, reference: Optional[str] = None) -> str:
    """Bracketed stand-in content for non-text messages."""
    label = f"[{kind.upper()}]"
    return f"{label} {reference}" if reference else label


def extract_whatsapp_content(message: Dict[str, Any]) -> Tuple[MessageType, str]:
    """Dispatch on the WhatsApp message type to get storable content."""
    msg_type = message.get("type")

    if msg_type == MessageType.TEXT.value:
        return MessageType.TEXT, str(_as_dict(message.get("text")).get("body", ""))

    if msg_type in PLACEHOLDER_TYPES:
        body = _as_dict(message.get(msg_type))
        reference = body.get("id") or body.get("name")
        return MessageType(msg_type), placeholder(msg_type, reference)

    return MessageType.UNKNOWN, placeholder("unknown", msg_type)


def extract_messenger_content(message: Dict[str, Any]) -> Tuple[MessageType, str]:
    """Text when present, otherwise a placeholder for the first attachment."""
    text = message.get("text")
    if text:
        return MessageType.TEXT, str(text)

    attachments = _as_list(message.get("attachments"))
    if attachments:
        attachment = _as_dict(attachments[0])
        msg_type = MESSENGER_ATTACHMENT_TYPES.get(attachment.get("type"))
        if msg_type is not None:
            url = _as_dict(attachment.get("payload")).get("url")
            return msg_type, placeholder(msg_type.value, url)

    return MessageType.UNKNOWN, placeholder("unknown")


class WebhookInterpreter:
    """Interface shared by the channel interpreters."""

    channel: Channel
    object_type: str

    def interpret(self, payload: Any) -> List[WebhookEvent]:
        """Return the normalized events contained in a webhook payload."""
        if not isinstance(payload, dict) or payload.get("object") != self.object_type:
            logger.info(
                "Ignoring webhook payload with unexpected object",
                extra={
                    "extra_data": {
                        "channel": self.channel.value,
                        "object": payload.get("object") if isinstance(payload, dict) else None,
                    }
                }
            )
            return []

        events: List[WebhookEvent] = []
        for raw in self._raw_events(payload):
            try:
                event = self._parse(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(
                    f"Skipping malformed {self.channel.value} webhook event: {e}",
                    extra={"extra_data": {"event": raw}}
                )
                continue
            if event is not None:
                events.append(event)

        logger.debug(
            "Webhook payload interpreted",
            extra={"extra_data": {"channel": self.channel.value, "events": len(events)}}
        )
        return events

    def _raw_events(self, payload: Dict[str, Any]) -> Iterable[Any]:
        raise NotImplementedError

    def _parse(self, raw: Any) -> Optional[WebhookEvent]:
        raise NotImplementedError


class WhatsAppInterpreter(WebhookInterpreter):
    """
    WhatsApp Cloud API payloads.

    Shape: entry[].changes[].value with value.messages[] and/or value.statuses[].
    """

    channel = Channel.WHATSAPP
    object_type = "whatsapp_business_account"

    def _raw_events(self, payload: Dict[str, Any]) -> Iterable[Any]:
        for entry in _as_list(payload.get("entry")):
            for change in _as_list(_as_dict(entry).get("changes")):
                value = _as_dict(_as_dict(change).get("value"))
                metadata = _as_dict(value.get("metadata"))
                business_number = metadata.get("display_phone_number")
                for message in _as_list(value.get("messages")):
                    yield ("message", message, business_number)
                for status in _as_list(value.get("statuses")):
                    yield ("status", status, business_number)

    def _parse(self, raw: Any) -> Optional[WebhookEvent]:
        kind, body, business_number = raw
        if kind == "message":
            return self._parse_message(body, business_number)
        return self._parse_status(body)

    def _parse_message(self, message: Dict[str, Any], business_number: Optional[str]) -> IncomingMessage:
        msg_type, content = extract_whatsapp_content(message)
        return IncomingMessage(
            sender_id=message["from"],
            recipient_id=business_number,
            provider_message_id=message["id"],
            type=msg_type,
            content=content,
            timestamp=_from_epoch(message.get("timestamp")),
        )

    def _parse_status(self, status: Dict[str, Any]) -> Optional[StatusUpdate]:
        raw_status = str(status["status"]).upper()
        if raw_status not in MessageStatus.__members__:
            logger.warning(
                "Ignoring unsupported WhatsApp status",
                extra={"extra_data": {"status": raw_status, "message_id": status.get("id")}}
            )
            return None

        error_reason = None
        errors = _as_list(status.get("errors"))
        if errors:
            error = _as_dict(errors[0])
            error_reason = f"{error.get('title') or error.get('message') or 'error'} (code {error.get('code')})"

        return StatusUpdate(
            provider_message_id=status["id"],
            recipient_id=status.get("recipient_id"),
            new_status=MessageStatus[raw_status],
            error_reason=error_reason,
        )


class MessengerInterpreter(WebhookInterpreter):
    """
    Messenger Platform payloads.

    Shape: entry[].messaging[] where each event carries message, delivery or read.
    """

    channel = Channel.MESSENGER
    object_type = "page"

    def _raw_events(self, payload: Dict[str, Any]) -> Iterable[Any]:
        for entry in _as_list(payload.get("entry")):
            for event in _as_list(_as_dict(entry).get("messaging")):
                yield event

    def _parse(self, event: Any) -> Optional[WebhookEvent]:
        sender_id = _as_dict(event.get("sender")).get("id")
        recipient_id = _as_dict(event.get("recipient")).get("id")

        if "message" in event:
            message = _as_dict(event["message"])
            msg_type, content = extract_messenger_content(message)
            return IncomingMessage(
                sender_id=sender_id,
                recipient_id=recipient_id,
                provider_message_id=message["mid"],
                type=msg_type,
                content=content,
                timestamp=_from_epoch(event.get("timestamp"), divisor=1000),
            )

        if "delivery" in event or "read" in event:
            if "delivery" in event:
                new_status = MessageStatus.DELIVERED
                mids = _as_list(_as_dict(event["delivery"]).get("mids"))
                message_id = mids[0] if mids else None
            else:
                new_status = MessageStatus.READ
                message_id = _as_dict(event["read"]).get("mid")

            if not message_id:
                logger.info(
                    "Messenger status event without message id",
                    extra={"extra_data": {"status": new_status.value, "sender": sender_id}}
                )
                return None

            # The contact is the one who received our message
            return StatusUpdate(
                provider_message_id=message_id,
                recipient_id=sender_id,
                new_status=new_status,
            )

        logger.debug("Ignoring Messenger event", extra={"extra_data": {"keys": sorted(event)}})
        return None


INTERPRETERS: Dict[Channel, WebhookInterpreter] = {
    Channel.WHATSAPP: WhatsAppInterpreter(),
    Channel.MESSENGER: MessengerInterpreter(),
}


def get_interpreter(channel: Channel) -> WebhookInterpreter:
    return INTERPRETERS[channel]


def interpret(channel: Channel, payload: Any) -> List[WebhookEvent]:
    """Interpret a payload delivered to the given channel's webhook."""
    return get_interpreter(channel).interpret(payload)
