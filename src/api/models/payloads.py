"""
Pydantic models for provider webhook payloads.

One model per provider, joined into a union discriminated by `provider`.
The routes tag the raw payload with the provider that owns the endpoint;
the channel normalizer maps each variant into an InboundMessage or a
StatusUpdate, so nothing past the HTTP boundary sees these shapes.
"""
import hashlib
import re
from email.utils import parseaddr
from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


def envelope_digest(prefix: str, *parts: Any) -> str:
    """Stable id for deliveries the provider sent without one."""
    joined = "\x1f".join("" if part is None else str(part) for part in parts)
    return f"{prefix}-{hashlib.sha256(joined.encode('utf-8')).hexdigest()[:32]}"


class TwilioPayload(BaseModel):
    """
    Twilio WhatsApp/SMS webhook payload (application/x-www-form-urlencoded).

    See: https://www.twilio.com/docs/messaging/guides/webhook-request
    """
    model_config = ConfigDict(extra="ignore")

    provider: Literal["twilio"] = "twilio"

    # Message identifiers
    MessageSid: str = Field(..., min_length=1, description="Unique identifier for the message")
    AccountSid: Optional[str] = Field(None, description="Twilio account identifier")

    # Sender / recipient ("whatsapp:+39..." on WhatsApp)
    From: Optional[str] = Field(None, description="Sender address, channel-prefixed")
    To: Optional[str] = Field(None, description="Your Twilio number, channel-prefixed")

    Body: Optional[str] = Field(None, description="Message text content")
    ProfileName: Optional[str] = Field(None, description="WhatsApp profile name of sender")

    # Present on delivery status callbacks
    SmsStatus: Optional[str] = Field(None, description="Message status")
    MessageStatus: Optional[str] = Field(None, description="Message status (newer callbacks)")

    @property
    def status(self) -> Optional[str]:
        return self.SmsStatus or self.MessageStatus

    @property
    def is_whatsapp(self) -> bool:
        return (self.From or "").lower().startswith("whatsapp:")


class LinkMobilityPayload(BaseModel):
    """LinkMobility WhatsApp webhook (JSON)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    provider: Literal["linkmobility"] = "linkmobility"

    message_id: Optional[str] = Field(None, validation_alias=AliasChoices("messageId", "message_id", "id"))
    message: Optional[str] = None
    sender: Optional[str] = None
    recipient: Optional[str] = None
    status: Optional[str] = None
    timestamp: Optional[Union[int, float, str]] = None

    @property
    def delivery_id(self) -> str:
        return self.message_id or envelope_digest("lm", self.sender, self.timestamp, self.message)


class SkebbyPayload(BaseModel):
    """
    Skebby SMS callback (JSON).

    Skebby's MO callbacks use the sms_* vocabulary; the shorter names are
    accepted as well.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    provider: Literal["skebby"] = "skebby"

    message_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("sms_id", "orderId", "order_id", "messageId", "message_id", "id")
    )
    message: Optional[str] = Field(None, validation_alias=AliasChoices("sms_text", "message", "text"))
    sender: Optional[str] = Field(None, validation_alias=AliasChoices("sms_sender", "phone", "sender", "from"))
    recipient: Optional[str] = Field(None, validation_alias=AliasChoices("sms_recipient", "recipient", "to"))
    status: Optional[str] = Field(None, validation_alias=AliasChoices("status", "delivery_status"))
    timestamp: Optional[Union[int, float, str]] = Field(None, validation_alias=AliasChoices("sms_date", "timestamp"))

    @property
    def delivery_id(self) -> str:
        return self.message_id or envelope_digest("sk", self.sender, self.timestamp, self.message)


_MESSAGE_ID_HEADER = re.compile(r"^message-id:\s*(\S+)\s*$", re.IGNORECASE | re.MULTILINE)
_TAGS = re.compile(r"<[^>]+>")


class SendGridPayload(BaseModel):
    """
    SendGrid Inbound Parse webhook (multipart/form-data, or JSON when relayed).

    See: https://www.twilio.com/docs/sendgrid/for-developers/parsing-email/setting-up-the-inbound-parse-webhook
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    provider: Literal["sendgrid"] = "sendgrid"

    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    headers: Optional[str] = None

    @property
    def sender_name(self) -> Optional[str]:
        name, _ = parseaddr(self.from_ or "")
        return name or None

    @property
    def sender_address(self) -> Optional[str]:
        _, address = parseaddr(self.from_ or "")
        return address or None

    @property
    def plain_body(self) -> Optional[str]:
        if self.text and self.text.strip():
            return self.text.strip()
        if self.html:
            stripped = _TAGS.sub(" ", self.html)
            stripped = " ".join(stripped.split())
            return stripped or None
        return None

    @property
    def message_id(self) -> str:
        """
        The Message-ID header when SendGrid forwarded one, otherwise a stable
        digest of the envelope so redeliveries still deduplicate.
        """
        if self.headers:
            found = _MESSAGE_ID_HEADER.search(self.headers)
            if found:
                return found.group(1).strip("<>")
        return envelope_digest("sg", self.from_, self.to, self.subject, self.text or self.html)


class FacebookParty(BaseModel):
    id: str


class FacebookMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False


class FacebookMessagingEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sender: Optional[FacebookParty] = None
    recipient: Optional[FacebookParty] = None
    timestamp: Optional[int] = None
    message: Optional[FacebookMessage] = None
    delivery: Optional[dict[str, Any]] = None
    read: Optional[dict[str, Any]] = None


class FacebookEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    time: Optional[int] = None
    messaging: List[FacebookMessagingEvent] = Field(default_factory=list)


class FacebookPayload(BaseModel):
    """Messenger Platform webhook: entry[].messaging[] events."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    provider: Literal["facebook"] = "facebook"

    object: Optional[str] = None
    entry: List[FacebookEntry] = Field(default_factory=list)


ProviderPayload = Annotated[
    Union[TwilioPayload, LinkMobilityPayload, SkebbyPayload, SendGridPayload, FacebookPayload],
    Field(discriminator="provider"),
]

provider_payload_adapter: TypeAdapter[ProviderPayload] = TypeAdapter(ProviderPayload)
