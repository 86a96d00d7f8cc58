"""
Facebook Messenger sender (Graph API Send API).
"""
from typing import Optional
import httpx
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.services.senders.base import HttpSender, SenderError, SenderNotConfiguredError

GRAPH_API_BASE = "https://graph.facebook.com"


class MessengerSender(HttpSender):
    provider = Provider.FACEBOOK
    channel = Channel.MESSENGER

    def __init__(
        self,
        page_access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        settings = get_settings()
        self.page_access_token = page_access_token or (
            settings.facebook_page_access_token.get_secret_value()
            if settings.facebook_page_access_token else None
        )
        self.api_version = api_version or settings.facebook_graph_api_version

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        if not self.page_access_token:
            raise SenderNotConfiguredError("Facebook page access token not configured")

        body = {
            "recipient": {"id": recipient},
            "messaging_type": "RESPONSE",
            "message": {"text": text},
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{GRAPH_API_BASE}/{self.api_version}/me/messages",
                    json=body,
                    headers={"Authorization": f"Bearer {self.page_access_token}"},
                )
        except httpx.HTTPError as e:
            raise SenderError(f"Messenger request failed: {e}") from e

        self._raise_for_status(response)
        message_id = response.json().get("message_id")
        if not message_id:
            raise SenderError("Messenger send failed: no message_id in response")

        logger.bind(message_id=message_id).info("✅ Messenger message sent")
        return message_id
