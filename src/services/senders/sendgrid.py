"""
SendGrid email sender (v3 Mail Send API).
"""
from typing import Optional
import httpx
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.services.senders.base import HttpSender, SenderError, SenderNotConfiguredError

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


def reply_subject(subject: Optional[str]) -> str:
    if not subject:
        return "Re: Il tuo messaggio"
    return subject if subject.lower().startswith("re:") else f"Re: {subject}"


class SendGridEmailSender(HttpSender):
    provider = Provider.SENDGRID
    channel = Channel.EMAIL

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        api_url: str = SENDGRID_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        settings = get_settings()
        self.api_key = api_key or (
            settings.sendgrid_api_key.get_secret_value() if settings.sendgrid_api_key else None
        )
        self.from_email = from_email or settings.sendgrid_from_email
        self.from_name = from_name or settings.sendgrid_from_name
        self.api_url = api_url

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        if not self.api_key or not self.from_email:
            raise SenderNotConfiguredError("SendGrid API key or sender address not configured")

        body = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": reply_subject(subject),
            "content": [{"type": "text/plain", "value": text}],
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self.api_url,
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            raise SenderError(f"SendGrid request failed: {e}") from e

        self._raise_for_status(response)
        # 202 Accepted, no body; the id comes back as a header
        message_id = response.headers.get("X-Message-Id")
        logger.bind(message_id=message_id).info("✅ SendGrid email accepted")
        return message_id
