"""
Webhook security: X-Hub-Signature-256 validation and subscription verification.
"""
import hmac
import hashlib
from typing import Optional

from fastapi import Depends, HTTPException, Request

from meta_relay.core.config import Settings, get_settings
from meta_relay.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute the signature Meta sends for a webhook body.

    Args:
        secret: The app secret
        body: Raw request body bytes

    Returns:
        Header value in the form "sha256=<hex digest>"
    """
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify a signature header value using constant-time comparison."""
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature.encode("utf-8"), signature.encode("utf-8"))


def verify_subscription(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    expected_token: Optional[str],
) -> Optional[str]:
    """
    Answer a webhook subscription handshake.

    Returns the challenge to echo back, or None when the handshake must be refused.
    """
    if not (mode and token and expected_token):
        return None
    if mode != "subscribe" or not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return None
    return challenge or ""


class SignatureValidator:
    """
    Dependency class for validating webhook signatures.
    """

    async def __call__(
        self,
        request: Request,
        settings: Settings = Depends(get_settings),
    ) -> bytes:
        """
        Validate the X-Hub-Signature-256 header against the request body.

        Returns:
            The raw request body bytes if valid

        Raises:
            HTTPException: 401 if signature is missing or invalid
        """
        signature: Optional[str] = request.headers.get(SIGNATURE_HEADER)

        if not signature:
            logger.warning(f"Webhook request missing {SIGNATURE_HEADER} header")
            raise HTTPException(status_code=401, detail="invalid signature")

        if not settings.is_app_secret_configured:
            logger.error("META_APP_SECRET environment variable not configured")
            raise HTTPException(status_code=401, detail="invalid signature")

        body = await request.body()

        if not verify_signature(settings.meta_app_secret, body, signature):
            logger.warning(
                "Webhook signature verification failed",
                extra={
                    "extra_data": {
                        "received_signature": signature[:16] + "...",
                        "path": request.url.path,
                    }
                }
            )
            raise HTTPException(status_code=401, detail="invalid signature")

        logger.debug("Webhook signature verified successfully")
        return body


validate_signature = SignatureValidator()


async def get_validated_body(
    body: bytes = Depends(validate_signature)
) -> bytes:
    """FastAPI dependency to get validated request body."""
    return body
