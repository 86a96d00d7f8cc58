from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.inbound import Channel, Provider, SHORT_TEXT_CHANNELS

MAX_SHORT_TEXT_CHARS = 160


class OutboundResponse(BaseModel):
    """
    A reply ready to be dispatched.

    Text on SMS/WhatsApp-compatible channels is capped at 160 characters.
    Over-long text is rejected at construction, never truncated.
    """
    model_config = ConfigDict(frozen=True)

    provider: Provider
    channel: Channel
    recipient: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    source_message_id: str
    subject: Optional[str] = None

    @model_validator(mode="after")
    def check_length(self) -> "OutboundResponse":
        if self.channel in SHORT_TEXT_CHANNELS and len(self.text) > MAX_SHORT_TEXT_CHARS:
            raise ValueError(
                f"{self.channel} replies are limited to {MAX_SHORT_TEXT_CHARS} characters "
                f"(got {len(self.text)})"
            )
        return self


class SendResult(BaseModel):
    """Outcome of a single outbound send."""
    success: bool
    provider: Provider
    channel: Channel
    recipient: str
    message_id: Optional[str] = None
    error: Optional[str] = None
