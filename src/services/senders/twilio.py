"""
Twilio senders (WhatsApp and SMS) via the Twilio Messages API.
"""
import asyncio
from typing import Optional
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.services.senders.base import SenderError, SenderNotConfiguredError, to_e164


class _TwilioSender:
    provider = Provider.TWILIO
    channel: Channel
    address_prefix = ""

    def __init__(self, client: Optional[Client] = None, from_number: Optional[str] = None):
        settings = get_settings()
        if client is not None:
            self.client = client
        elif settings.twilio_account_sid and settings.twilio_auth_token:
            self.client = Client(
                settings.twilio_account_sid,
                settings.twilio_auth_token.get_secret_value()
            )
        else:
            self.client = None
            logger.warning("Twilio credentials not configured - sender will not be functional")

        self.from_number = from_number or self._default_from(settings)

    def _default_from(self, settings) -> Optional[str]:
        raise NotImplementedError

    def _address(self, number: str) -> str:
        if self.address_prefix and not number.startswith(self.address_prefix):
            return f"{self.address_prefix}{number}"
        return number

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        if not self.client or not self.from_number:
            raise SenderNotConfiguredError("Twilio client not configured - missing credentials")

        to_number = self._address(to_e164(recipient))

        # The Twilio client is synchronous; keep it off the event loop.
        try:
            message = await asyncio.to_thread(
                self.client.messages.create,
                body=text,
                from_=self._address(self.from_number),
                to=to_number,
            )
        except TwilioRestException as e:
            raise SenderError(f"Twilio error {e.code}: {e.msg}") from e

        logger.bind(
            message_sid=message.sid,
            status=message.status,
        ).info(f"✅ Twilio {self.channel.value} message sent")
        return message.sid


class TwilioWhatsAppSender(_TwilioSender):
    channel = Channel.WHATSAPP
    address_prefix = "whatsapp:"

    def _default_from(self, settings) -> Optional[str]:
        return settings.twilio_whatsapp_from


class TwilioSMSSender(_TwilioSender):
    channel = Channel.SMS

    def _default_from(self, settings) -> Optional[str]:
        return settings.twilio_sms_from
