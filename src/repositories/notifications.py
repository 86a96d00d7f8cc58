"""
Internal Notification Repository
In-app notifications for the operations team.
"""
from motor.motor_asyncio import AsyncIOMotorDatabase

from .base import BaseRepository
from ..models.notification import InternalNotification


class InternalNotificationRepository(BaseRepository[InternalNotification]):
    """Write side only: the back-office application reads and marks them."""

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "notifications", InternalNotification)
