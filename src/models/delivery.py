import datetime as dt
from typing import Optional
from pydantic import Field

from src.models.base import MongoBaseModel


class DeliveryRecord(MongoBaseModel):
    """
    One webhook delivery, keyed by (provider, message_id).
    The unique index on that pair is what makes redeliveries detectable.
    """
    provider: str
    message_id: str
    channel: Optional[str] = None
    sender: Optional[str] = None
    received_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
    status: Optional[str] = None
