"""
Channel Normalizer

Maps each provider's payload into the canonical InboundMessage, or into a
StatusUpdate when the payload is a delivery/read callback. Payloads missing
the fields a message needs are reported as malformed (empty result) and
never raise: the ingress still acknowledges them.
"""
import datetime as dt
import hmac
from typing import Any, List, Mapping, Optional, Union
from pydantic import ValidationError
from loguru import logger

from src.api.models.payloads import (
    FacebookPayload,
    LinkMobilityPayload,
    ProviderPayload,
    SendGridPayload,
    SkebbyPayload,
    TwilioPayload,
    provider_payload_adapter,
)
from src.models.inbound import Channel, InboundMessage, Provider, StatusUpdate

NormalizedEvent = Union[InboundMessage, StatusUpdate]


def parse_timestamp(value: Union[int, float, str, None]) -> dt.datetime:
    """
    Provider timestamp to an aware UTC datetime.

    Accepts epoch seconds, epoch milliseconds and ISO 8601 strings; anything
    unreadable falls back to the time of receipt.
    """
    now = dt.datetime.now(dt.UTC)
    if value is None or value == "":
        return now

    if isinstance(value, str):
        stripped = value.strip()
        try:
            value = float(stripped)
        except ValueError:
            try:
                parsed = dt.datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            except ValueError:
                return now
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.UTC)

    seconds = float(value)
    if seconds > 1e11:  # milliseconds
        seconds /= 1000.0
    try:
        return dt.datetime.fromtimestamp(seconds, tz=dt.UTC)
    except (OverflowError, OSError, ValueError):
        return now


def _strip_channel_prefix(address: str) -> str:
    for prefix in ("whatsapp:", "sms:", "messenger:"):
        if address.lower().startswith(prefix):
            return address[len(prefix):]
    return address


class ChannelNormalizer:
    """
    Usage:
        normalizer = ChannelNormalizer()
        for event in normalizer.normalize_raw(Provider.TWILIO, form_fields):
            ...
    """

    def parse(self, provider: Provider, data: Mapping[str, Any]) -> Optional[ProviderPayload]:
        """Tag raw fields with their provider and validate; None if malformed."""
        try:
            return provider_payload_adapter.validate_python({**data, "provider": provider.value})
        except ValidationError as e:
            logger.warning(
                f"Malformed {provider.value} payload: {e.error_count()} validation error(s)"
            )
            return None

    def normalize_raw(self, provider: Provider, data: Mapping[str, Any]) -> List[NormalizedEvent]:
        payload = self.parse(provider, data)
        if payload is None:
            return []
        return self.normalize(payload)

    def normalize(self, payload: ProviderPayload) -> List[NormalizedEvent]:
        """
        Canonical events carried by a payload.

        An empty list means the payload had nothing actionable: no status and
        not enough fields for a message.
        """
        try:
            if isinstance(payload, TwilioPayload):
                events = self._from_twilio(payload)
            elif isinstance(payload, LinkMobilityPayload):
                events = self._from_linkmobility(payload)
            elif isinstance(payload, SkebbyPayload):
                events = self._from_skebby(payload)
            elif isinstance(payload, SendGridPayload):
                events = self._from_sendgrid(payload)
            elif isinstance(payload, FacebookPayload):
                events = self._from_facebook(payload)
            else:
                raise TypeError(f"Unknown payload type: {type(payload).__name__}")
        except ValidationError as e:
            logger.warning(f"Payload could not be normalized: {e.error_count()} validation error(s)")
            return []

        if not events:
            logger.info(f"Skipping {payload.provider} payload with no message or status")
        return events

    # ------------------------------------------------------------------
    # Per-provider mappings
    # ------------------------------------------------------------------

    def _from_twilio(self, payload: TwilioPayload) -> List[NormalizedEvent]:
        if payload.status:
            return [StatusUpdate(
                provider=Provider.TWILIO,
                message_id=payload.MessageSid,
                status=payload.status,
            )]
        if not (payload.Body and payload.From):
            return []
        return [InboundMessage(
            sender=_strip_channel_prefix(payload.From),
            recipient=_strip_channel_prefix(payload.To or ""),
            body=payload.Body,
            channel=Channel.WHATSAPP if payload.is_whatsapp else Channel.SMS,
            provider=Provider.TWILIO,
            message_id=payload.MessageSid,
            sender_name=payload.ProfileName,
        )]

    def _from_linkmobility(self, payload: LinkMobilityPayload) -> List[NormalizedEvent]:
        if payload.status:
            if not payload.message_id:
                return []
            return [StatusUpdate(
                provider=Provider.LINKMOBILITY,
                message_id=payload.message_id,
                status=payload.status,
                received_at=parse_timestamp(payload.timestamp),
            )]
        if not (payload.message and payload.sender):
            return []
        return [InboundMessage(
            sender=payload.sender,
            recipient=payload.recipient or "",
            body=payload.message,
            channel=Channel.WHATSAPP,
            provider=Provider.LINKMOBILITY,
            message_id=payload.delivery_id,
            received_at=parse_timestamp(payload.timestamp),
        )]

    def _from_skebby(self, payload: SkebbyPayload) -> List[NormalizedEvent]:
        if payload.status:
            if not payload.message_id:
                return []
            return [StatusUpdate(
                provider=Provider.SKEBBY,
                message_id=payload.message_id,
                status=payload.status,
            )]
        if not (payload.message and payload.sender):
            return []
        return [InboundMessage(
            sender=payload.sender,
            recipient=payload.recipient or "",
            body=payload.message,
            channel=Channel.SMS,
            provider=Provider.SKEBBY,
            message_id=payload.delivery_id,
            received_at=parse_timestamp(payload.timestamp),
        )]

    def _from_sendgrid(self, payload: SendGridPayload) -> List[NormalizedEvent]:
        sender = payload.sender_address
        body = payload.plain_body
        if not (sender and body):
            return []
        return [InboundMessage(
            sender=sender,
            recipient=payload.to or "",
            body=body,
            channel=Channel.EMAIL,
            provider=Provider.SENDGRID,
            message_id=payload.message_id,
            subject=payload.subject,
            sender_name=payload.sender_name,
        )]

    def _from_facebook(self, payload: FacebookPayload) -> List[NormalizedEvent]:
        events: List[NormalizedEvent] = []
        for entry in payload.entry:
            for event in entry.messaging:
                if event.delivery:
                    for mid in event.delivery.get("mids") or []:
                        events.append(StatusUpdate(
                            provider=Provider.FACEBOOK,
                            message_id=str(mid),
                            status="delivered",
                        ))
                    continue
                if event.read:
                    events.append(StatusUpdate(
                        provider=Provider.FACEBOOK,
                        message_id=str(event.read.get("watermark", "")) or "read",
                        status="read",
                    ))
                    continue

                message = event.message
                if message is None or message.is_echo:
                    continue
                if not (message.text and message.mid and event.sender):
                    logger.debug("Skipping Messenger event without text")
                    continue

                events.append(InboundMessage(
                    sender=event.sender.id,
                    recipient=event.recipient.id if event.recipient else "",
                    body=message.text,
                    channel=Channel.MESSENGER,
                    provider=Provider.FACEBOOK,
                    message_id=message.mid,
                    received_at=parse_timestamp(event.timestamp),
                ))
        return events


def verify_subscription(
    mode: Optional[str],
    token: Optional[str],
    challenge: Optional[str],
    expected_token: Optional[str]
) -> Optional[str]:
    """
    Messenger webhook handshake.

    Returns the challenge to echo back when mode is "subscribe" and the token
    matches the configured verify token, None otherwise.
    """
    if mode != "subscribe" or not token or not expected_token or challenge is None:
        return None
    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        return None
    return challenge
