"""
Dispatch Service

Single entry point for outbound messages. Routes each send to the sender
registered for its (provider, channel) pair and turns every sender failure
into a failed SendResult, so one bad recipient never breaks a caller that
is fanning out to many.
"""
from typing import Dict, Iterable, Optional, Tuple
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.models.outbound import OutboundResponse, SendResult
from src.services.senders import (
    LinkMobilityWhatsAppSender,
    MessageSender,
    MessengerSender,
    SendGridEmailSender,
    SkebbySMSSender,
    TwilioSMSSender,
    TwilioWhatsAppSender,
)
from src.utils.metrics import metrics


class UnsupportedOperationError(Exception):
    """No sender is registered for the requested provider/channel pair."""

    def __init__(self, provider: Provider, channel: Channel):
        self.provider = provider
        self.channel = channel
        super().__init__(
            f"Sending {channel.value} via {provider.value} is not yet supported"
        )


class DispatchService:
    """
    Usage:
        dispatch = DispatchService([TwilioWhatsAppSender()])
        result = await dispatch.send(Provider.TWILIO, Channel.WHATSAPP, "+39...", "Ciao!")
    """

    def __init__(self, senders: Iterable[MessageSender] = ()):
        self._senders: Dict[Tuple[Provider, Channel], MessageSender] = {}
        for sender in senders:
            self.register(sender)

    def register(self, sender: MessageSender) -> None:
        self._senders[(sender.provider, sender.channel)] = sender
        logger.debug(f"Registered sender {sender.provider.value}/{sender.channel.value}")

    def supports(self, provider: Provider, channel: Channel) -> bool:
        return (provider, channel) in self._senders

    @property
    def registered(self) -> list[Tuple[Provider, Channel]]:
        return list(self._senders)

    def sender_for(self, provider: Provider, channel: Channel) -> MessageSender:
        """
        Raises:
            UnsupportedOperationError: If no sender handles the pair
        """
        try:
            return self._senders[(provider, channel)]
        except KeyError:
            raise UnsupportedOperationError(provider, channel) from None

    async def send(
        self,
        provider: Provider,
        channel: Channel,
        recipient: str,
        text: str,
        subject: Optional[str] = None
    ) -> SendResult:
        """
        Send one message.

        Raises:
            UnsupportedOperationError: For an unregistered (provider, channel)

        Every other failure is reported in the returned SendResult.
        """
        sender = self.sender_for(provider, channel)

        try:
            message_id = await sender.send(recipient, text, subject=subject)
        except Exception as e:
            logger.bind(
                provider=provider.value,
                channel=channel.value,
            ).error(f"❌ Send failed via {provider.value}/{channel.value}: {e}")
            metrics.dispatch_total.inc(provider=provider.value, channel=channel.value, result="failed")
            return SendResult(
                success=False,
                provider=provider,
                channel=channel,
                recipient=recipient,
                error=str(e),
            )

        metrics.dispatch_total.inc(provider=provider.value, channel=channel.value, result="sent")
        return SendResult(
            success=True,
            provider=provider,
            channel=channel,
            recipient=recipient,
            message_id=message_id,
        )

    async def send_response(self, response: OutboundResponse) -> SendResult:
        return await self.send(
            response.provider,
            response.channel,
            response.recipient,
            response.text,
            subject=response.subject,
        )

    @classmethod
    def from_settings(cls) -> "DispatchService":
        """Register a sender for every provider whose credentials are configured."""
        settings = get_settings()
        senders: list[MessageSender] = []

        if settings.twilio_account_sid and settings.twilio_auth_token:
            if settings.twilio_whatsapp_from:
                senders.append(TwilioWhatsAppSender())
            if settings.twilio_sms_from:
                senders.append(TwilioSMSSender())
        if settings.linkmobility_api_key:
            senders.append(LinkMobilityWhatsAppSender())
        if settings.skebby_username and settings.skebby_password:
            senders.append(SkebbySMSSender())
        if settings.sendgrid_api_key and settings.sendgrid_from_email:
            senders.append(SendGridEmailSender())
        if settings.facebook_page_access_token:
            senders.append(MessengerSender())

        service = cls(senders)
        logger.bind(
            senders=[f"{s.provider.value}/{s.channel.value}" for s in senders],
        ).info(f"Dispatch ready with {len(senders)} sender(s)")
        return service
