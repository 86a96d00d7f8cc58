import datetime as dt
from enum import StrEnum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Channel(StrEnum):
    WHATSAPP = "whatsapp"
    SMS = "sms"
    EMAIL = "email"
    MESSENGER = "messenger"


class Provider(StrEnum):
    TWILIO = "twilio"
    LINKMOBILITY = "linkmobility"
    SKEBBY = "skebby"
    SENDGRID = "sendgrid"
    FACEBOOK = "facebook"


# Channels whose replies must fit in a single SMS-sized message
SHORT_TEXT_CHANNELS = frozenset({Channel.WHATSAPP, Channel.SMS})


class InboundMessage(BaseModel):
    """
    Canonical inbound message, one per webhook delivery.

    Every provider payload is mapped into this shape at the HTTP boundary,
    so nothing downstream ever looks at provider-specific fields.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: str = Field(..., alias="from", min_length=1)
    recipient: str = Field("", alias="to")
    body: str = Field(..., min_length=1)
    channel: Channel
    provider: Provider
    message_id: str = Field(..., min_length=1)
    received_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))

    # Optional extras some channels carry
    subject: Optional[str] = None
    sender_name: Optional[str] = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Idempotency key for a delivery: (provider, message_id)."""
        return (self.provider.value, self.message_id)


class StatusUpdate(BaseModel):
    """Delivery/read status callback for a previously sent message."""
    model_config = ConfigDict(frozen=True)

    provider: Provider
    message_id: str
    status: str
    received_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
