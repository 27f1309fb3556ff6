"""
Unit tests for the channel webhook interpreters.
"""
from datetime import datetime, timezone

import pytest

from meta_relay.models.enums import Channel, MessageStatus, MessageType
from meta_relay.schemas.events import IncomingMessage, StatusUpdate
from meta_relay.services.interpreter import (
    extract_whatsapp_content,
    get_interpreter,
    interpret,
)

from payloads import (
    BUSINESS_NUMBER,
    PAGE_ID,
    messenger_delivery,
    messenger_message,
    messenger_payload,
    messenger_read,
    whatsapp_payload,
    whatsapp_status,
    whatsapp_text,
)


class TestWhatsAppInterpreter:
    """Tests for WhatsApp Cloud API payloads."""

    def test_text_message_becomes_incoming_message(self):
        """A text message yields one IncomingMessage with the body as content."""
        events = interpret(Channel.WHATSAPP, whatsapp_payload(messages=[whatsapp_text()]))

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, IncomingMessage)
        assert event.sender_id == "15550001"
        assert event.recipient_id == BUSINESS_NUMBER
        assert event.provider_message_id == "wamid.A"
        assert event.type == MessageType.TEXT
        assert event.content == "Hello"
        assert event.timestamp == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_statuses_are_uppercased(self):
        """Provider status strings map onto the internal enum."""
        payload = whatsapp_payload(statuses=[
            whatsapp_status("wamid.A", "sent"),
            whatsapp_status("wamid.A", "delivered"),
            whatsapp_status("wamid.A", "read"),
        ])
        events = interpret(Channel.WHATSAPP, payload)

        assert [e.new_status for e in events] == [
            MessageStatus.SENT,
            MessageStatus.DELIVERED,
            MessageStatus.READ,
        ]
        assert all(isinstance(e, StatusUpdate) for e in events)
        assert events[0].recipient_id == "15550001"

    def test_failed_status_carries_error_reason(self):
        payload = whatsapp_payload(statuses=[
            whatsapp_status("wamid.A", "failed", errors=[{"code": 131026, "title": "Message undeliverable"}])
        ])
        [event] = interpret(Channel.WHATSAPP, payload)

        assert event.new_status == MessageStatus.FAILED
        assert event.error_reason == "Message undeliverable (code 131026)"

    def test_unsupported_status_is_dropped(self):
        payload = whatsapp_payload(statuses=[whatsapp_status("wamid.A", "deleted")])
        assert interpret(Channel.WHATSAPP, payload) == []

    def test_messages_and_statuses_in_one_change(self):
        payload = whatsapp_payload(
            messages=[whatsapp_text("wamid.X")],
            statuses=[whatsapp_status("wamid.Y", "read")],
        )
        events = interpret(Channel.WHATSAPP, payload)

        assert [e.kind for e in events] == ["message", "status"]

    def test_other_object_is_ignored(self):
        """Payloads for other products produce no events and no error."""
        payload = whatsapp_payload(messages=[whatsapp_text()])
        payload["object"] = "instagram"
        assert interpret(Channel.WHATSAPP, payload) == []

    @pytest.mark.parametrize("payload", [
        None,
        [],
        "not a payload",
        {"object": "whatsapp_business_account"},
        {"object": "whatsapp_business_account", "entry": "nope"},
        {"object": "whatsapp_business_account", "entry": [{"changes": [{"value": None}]}]},
    ])
    def test_malformed_payloads_degrade_to_no_events(self, payload):
        assert interpret(Channel.WHATSAPP, payload) == []

    def test_malformed_message_is_skipped_but_others_survive(self):
        """A message missing its id does not take the rest of the batch with it."""
        broken = whatsapp_text("wamid.bad")
        del broken["id"]
        payload = whatsapp_payload(messages=[broken, whatsapp_text("wamid.good")])

        events = interpret(Channel.WHATSAPP, payload)

        assert [e.provider_message_id for e in events] == ["wamid.good"]

    def test_garbled_timestamp_falls_back_to_now(self):
        message = whatsapp_text(timestamp="yesterday")
        before = datetime.now(timezone.utc)
        [event] = interpret(Channel.WHATSAPP, whatsapp_payload(messages=[message]))
        assert event.timestamp >= before


class TestWhatsAppContentExtraction:
    """Tests for type-dispatched content extraction."""

    def test_text(self):
        assert extract_whatsapp_content({"type": "text", "text": {"body": "Hi"}}) == (MessageType.TEXT, "Hi")

    @pytest.mark.parametrize("msg_type", ["image", "audio", "document", "video"])
    def test_media_uses_placeholder_with_media_id(self, msg_type):
        message = {"type": msg_type, msg_type: {"id": "media-42", "mime_type": "x/y"}}
        assert extract_whatsapp_content(message) == (MessageType(msg_type), f"[{msg_type.upper()}] media-42")

    def test_template_falls_back_to_name(self):
        message = {"type": "template", "template": {"name": "order_update"}}
        assert extract_whatsapp_content(message) == (MessageType.TEMPLATE, "[TEMPLATE] order_update")

    def test_unrecognized_type(self):
        assert extract_whatsapp_content({"type": "sticker", "sticker": {"id": "s1"}}) == (
            MessageType.UNKNOWN,
            "[UNKNOWN] sticker",
        )


class TestMessengerInterpreter:
    """Tests for Messenger Platform payloads."""

    def test_message_event(self):
        [event] = interpret(Channel.MESSENGER, messenger_payload([messenger_message()]))

        assert isinstance(event, IncomingMessage)
        assert event.provider_message_id == "m_in"
        assert event.sender_id == "psid-1"
        assert event.recipient_id == PAGE_ID
        assert event.content == "Hola"
        assert event.timestamp == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_attachment_message_uses_placeholder(self):
        raw = messenger_message(mid="m_img")
        raw["message"] = {
            "mid": "m_img",
            "attachments": [{"type": "image", "payload": {"url": "https://cdn.test/a.jpg"}}],
        }
        [event] = interpret(Channel.MESSENGER, messenger_payload([raw]))

        assert event.type == MessageType.IMAGE
        assert event.content == "[IMAGE] https://cdn.test/a.jpg"

    def test_delivery_uses_first_mid(self):
        [event] = interpret(Channel.MESSENGER, messenger_payload([messenger_delivery(["m1", "m2"])]))

        assert isinstance(event, StatusUpdate)
        assert event.provider_message_id == "m1"
        assert event.new_status == MessageStatus.DELIVERED

    def test_delivery_without_mids_yields_nothing(self):
        assert interpret(Channel.MESSENGER, messenger_payload([messenger_delivery([])])) == []

    def test_read_with_mid(self):
        [event] = interpret(Channel.MESSENGER, messenger_payload([messenger_read("m1")]))
        assert event.new_status == MessageStatus.READ
        assert event.provider_message_id == "m1"

    def test_read_without_mid_yields_nothing(self):
        assert interpret(Channel.MESSENGER, messenger_payload([messenger_read()])) == []

    def test_non_page_object_is_ignored(self):
        payload = messenger_payload([messenger_message()])
        payload["object"] = "whatsapp_business_account"
        assert interpret(Channel.MESSENGER, payload) == []

    def test_unhandled_event_kinds_are_ignored(self):
        postback = {"sender": {"id": "psid-1"}, "recipient": {"id": PAGE_ID}, "postback": {"payload": "GO"}}
        assert interpret(Channel.MESSENGER, messenger_payload([postback])) == []

    def test_interpreters_share_one_contract(self):
        for channel in Channel:
            interpreter = get_interpreter(channel)
            assert interpreter.channel is channel
            assert interpreter.interpret({"object": "something-else"}) == []
