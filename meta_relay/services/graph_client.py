"""
Thin async client for the Meta Graph API endpoints the relay uses.
"""
from typing import Any, Dict, List, Optional

import httpx

from meta_relay.core.config import MetaConfig
from meta_relay.core.errors import GraphAPIError
from meta_relay.core.logging import get_logger

logger = get_logger(__name__)


def _headers(token: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {token}",
    }


class GraphClient:
    """Sends messages and reads the template catalog over the Graph API."""

    def __init__(self, config: MetaConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.http_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.config.base_url}/{path.lstrip('/')}"
        try:
            response = await self.http_client.request(method, url, json=json, headers=_headers(token))
        except httpx.TimeoutException:
            logger.error("Graph API request timed out", extra={"extra_data": {"url": url}})
            raise GraphAPIError(f"Request timeout ({self.config.http_timeout}s)")
        except httpx.RequestError as e:
            logger.error(f"Graph API request failed: {e}", extra={"extra_data": {"url": url}})
            raise GraphAPIError(f"Request error: {str(e)[:200]}")

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text[:1000]}

        if response.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            if not isinstance(error, dict):
                error = {"message": error} if isinstance(error, str) else {}
            message = error.get("message") or f"HTTP {response.status_code}"
            logger.warning(
                "Graph API returned an error",
                extra={
                    "extra_data": {
                        "url": url,
                        "status_code": response.status_code,
                        "error_code": error.get("code"),
                        "error_message": message,
                    }
                }
            )
            raise GraphAPIError(
                message,
                status_code=response.status_code,
                code=error.get("code"),
                payload=data,
            )

        return data

    async def send_whatsapp_text(self, to: str, body: str) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        return await self._request(
            "POST",
            f"{self.config.whatsapp_phone_number_id}/messages",
            self.config.whatsapp_token,
            json=payload,
        )

    async def send_whatsapp_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": language_code},
                "components": components,
            },
        }
        return await self._request(
            "POST",
            f"{self.config.whatsapp_phone_number_id}/messages",
            self.config.whatsapp_token,
            json=payload,
        )

    async def send_messenger_text(self, recipient_id: str, text: str) -> Dict[str, Any]:
        payload = {
            "messaging_type": "RESPONSE",
            "recipient": {"id": recipient_id},
            "message": {"text": text},
        }
        return await self._request("POST", "me/messages", self.config.messenger_token, json=payload)

    async def fetch_whatsapp_templates(self) -> Dict[str, Any]:
        """Template catalog of the business account ({"data": [...], "paging": ...})."""
        return await self._request(
            "GET",
            f"{self.config.whatsapp_business_account_id}/message_templates",
            self.config.whatsapp_token,
        )
