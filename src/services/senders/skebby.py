"""
Skebby SMS sender.

Skebby's REST API is session based: GET login returns "user_key;session_key",
and both keys go in headers on the send call.
"""
from typing import Optional, Tuple
import httpx
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.services.senders.base import HttpSender, SenderError, SenderNotConfiguredError, to_e164


class SkebbySMSSender(HttpSender):
    provider = Provider.SKEBBY
    channel = Channel.SMS

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_url: Optional[str] = None,
        message_type: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        settings = get_settings()
        self.username = username or settings.skebby_username
        self.password = password or (
            settings.skebby_password.get_secret_value() if settings.skebby_password else None
        )
        api_url = api_url or settings.skebby_api_url
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self.message_type = message_type or settings.skebby_message_type
        self.sender = sender or settings.skebby_sender

    async def _login(self, client: httpx.AsyncClient) -> Tuple[str, str]:
        response = await client.get(
            f"{self.api_url}login",
            params={"username": self.username, "password": self.password},
        )
        self._raise_for_status(response)

        user_key, _, session_key = response.text.strip().partition(";")
        if not user_key or not session_key:
            raise SenderError("Invalid Skebby login response")
        return user_key, session_key

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        if not self.username or not self.password:
            raise SenderNotConfiguredError("Skebby credentials not configured")

        body = {
            "message": text,
            "message_type": self.message_type,
            "recipient": [to_e164(recipient)],
            "returnCredits": True,
        }
        if self.sender:
            body["sender"] = self.sender

        try:
            async with self._client() as client:
                user_key, session_key = await self._login(client)
                response = await client.post(
                    f"{self.api_url}sms",
                    json=body,
                    headers={
                        "user_key": user_key,
                        "Session_key": session_key,
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise SenderError(f"Skebby request failed: {e}") from e

        self._raise_for_status(response)
        result = response.json()
        if result.get("result") != "OK":
            raise SenderError(f"Skebby API error: {result.get('error', 'Unknown error')}")

        order_id = result.get("order_id")
        logger.bind(order_id=order_id).info("✅ Skebby SMS sent")
        return order_id
