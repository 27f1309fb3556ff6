"""
Applies interpreted webhook events to the message store.
"""
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meta_relay.core.config import MetaConfig
from meta_relay.core.logging import get_logger
from meta_relay.models.enums import Channel
from meta_relay.schemas.events import IncomingMessage
from meta_relay.services.interpreter import interpret
from meta_relay.services.message_store import MessageStore

logger = get_logger(__name__)


@dataclass
class WebhookResult:
    created: int = 0
    duplicates: int = 0
    status_updates: int = 0
    unknown_status_targets: int = 0
    failed: int = 0


def process_webhook(db: Session, channel: Channel, payload: Any, config: MetaConfig) -> WebhookResult:
    """
    Interpret a webhook payload and reconcile every event it carries.

    Storage errors on one event are logged and do not stop the others.
    """
    store = MessageStore(db, config)
    result = WebhookResult()

    for event in interpret(channel, payload):
        try:
            if isinstance(event, IncomingMessage):
                if store.record_incoming(event, channel) is None:
                    result.duplicates += 1
                else:
                    result.created += 1
            else:
                updated = store.apply_status(event.provider_message_id, event.new_status, event.error_reason)
                if updated is None:
                    result.unknown_status_targets += 1
                else:
                    result.status_updates += 1
        except SQLAlchemyError:
            db.rollback()
            result.failed += 1
            logger.exception(
                "Failed to apply webhook event",
                extra={"extra_data": {"channel": channel.value, "message_id": event.provider_message_id}}
            )

    logger.info(
        "Webhook processed",
        extra={"extra_data": {"channel": channel.value, **asdict(result)}}
    )
    return result
