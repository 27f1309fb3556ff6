"""
Domain errors and provider error classification.
"""
import enum
from typing import Any, Optional, Tuple


class SendErrorKind(str, enum.Enum):
    UNREGISTERED_NUMBER = "UNREGISTERED_NUMBER"
    INVALID_NUMBER = "INVALID_NUMBER"
    RECIPIENT_BLOCKED = "RECIPIENT_BLOCKED"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


# Graph API error codes with a dedicated user-facing message.
# 551 is Messenger's "this person isn't available right now".
PROVIDER_ERROR_CODES = {
    131026: SendErrorKind.UNREGISTERED_NUMBER,
    131009: SendErrorKind.INVALID_NUMBER,
    131021: SendErrorKind.INVALID_NUMBER,
    131050: SendErrorKind.RECIPIENT_BLOCKED,
    551: SendErrorKind.RECIPIENT_BLOCKED,
}

REASONS = {
    SendErrorKind.UNREGISTERED_NUMBER: "The recipient is not registered on WhatsApp.",
    SendErrorKind.INVALID_NUMBER: "The recipient number is invalid.",
    SendErrorKind.RECIPIENT_BLOCKED: "The recipient has blocked messages from this business.",
}


def classify_provider_error(code: Optional[int], raw: Any) -> Tuple[SendErrorKind, str]:
    """
    Map a provider error code to a stable kind and a displayable reason.

    Args:
        code: Graph API error code, None for transport failures
        raw: Raw provider error (message or payload) embedded in generic reasons

    Returns:
        (kind, reason) tuple
    """
    kind = PROVIDER_ERROR_CODES.get(code, SendErrorKind.UPSTREAM_FAILURE)
    if kind is SendErrorKind.UPSTREAM_FAILURE:
        return kind, f"The messaging provider rejected the message: {raw}"
    return kind, REASONS[kind]


class GraphAPIError(Exception):
    """A Graph API call failed, either at transport level or with an error payload."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload


class OutboundSendError(Exception):
    """An outbound send failed; the local record has been marked FAILED."""

    def __init__(self, kind: SendErrorKind, reason: str, message_id: Optional[str] = None,
                 provider_code: Optional[int] = None):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason
        self.message_id = message_id
        self.provider_code = provider_code

    @property
    def status_code(self) -> int:
        # Recipient problems are the caller's to fix, the rest is upstream
        if self.kind is SendErrorKind.UPSTREAM_FAILURE:
            return 502
        return 400


class ConversationNotFound(Exception):
    """No conversation with the given id exists on the requested channel."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
