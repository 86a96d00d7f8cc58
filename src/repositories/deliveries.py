"""
Delivery Repository
Idempotency ledger for webhook deliveries.
"""
import datetime as dt
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from .base import BaseRepository
from ..models.delivery import DeliveryRecord
from ..models.inbound import InboundMessage, StatusUpdate
from ..utils.observability import logger


class DeliveryRepository(BaseRepository[DeliveryRecord]):
    """
    Records every inbound delivery once.

    `is_duplicate` relies on the unique (provider, message_id) index created
    at startup: the insert either claims the key or fails with a duplicate.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "deliveries", DeliveryRecord)

    async def is_duplicate(self, message: InboundMessage) -> bool:
        record = DeliveryRecord(
            provider=message.provider.value,
            message_id=message.message_id,
            channel=message.channel.value,
            sender=message.sender,
            received_at=message.received_at,
        )
        try:
            await self.create(record)
        except DuplicateKeyError:
            logger.bind(
                provider=message.provider.value,
                message_id=message.message_id,
            ).info(f"Duplicate delivery {message.provider.value}/{message.message_id}")
            return True
        return False

    async def record_status(self, update: StatusUpdate) -> bool:
        """Attach a delivery/read status to the outbound message it refers to."""
        result = await self.collection.update_one(
            {"provider": update.provider.value, "message_id": update.message_id},
            {
                "$set": {"status": update.status, "updated_at": dt.datetime.now(dt.UTC)},
                "$setOnInsert": {"created_at": update.received_at},
            },
            upsert=True,
        )
        return result.matched_count > 0 or result.upserted_id is not None
