"""
LinkMobility WhatsApp sender (REST, bearer token).
"""
from typing import Optional
import httpx
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.services.senders.base import HttpSender, SenderError, SenderNotConfiguredError, to_e164


class LinkMobilityWhatsAppSender(HttpSender):
    provider = Provider.LINKMOBILITY
    channel = Channel.WHATSAPP

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        platform_id: Optional[str] = None,
        partner_id: Optional[str] = None,
        source: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        settings = get_settings()
        self.api_key = api_key or (
            settings.linkmobility_api_key.get_secret_value() if settings.linkmobility_api_key else None
        )
        self.endpoint = (endpoint or settings.linkmobility_endpoint).rstrip("/")
        self.platform_id = platform_id or settings.linkmobility_platform_id
        self.partner_id = partner_id or settings.linkmobility_partner_id
        self.source = source or settings.linkmobility_source_number

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        if not self.api_key:
            raise SenderNotConfiguredError("LinkMobility API key not configured")

        body = {
            "platformId": self.platform_id,
            "platformPartnerId": self.partner_id,
            "source": self.source,
            "destination": to_e164(recipient),
            "message": text,
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.endpoint}/whatsapp/v1/send",
                    json=body,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise SenderError(f"LinkMobility request failed: {e}") from e

        self._raise_for_status(response)
        message_id = response.json().get("messageId")
        logger.bind(message_id=message_id).info("✅ LinkMobility WhatsApp message sent")
        return message_id
