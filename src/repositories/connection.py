"""
MongoDB Connection
Motor client lifecycle and the indexes the webhook engine relies on.
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
from ..config import Settings, settings as default_settings
from ..utils.observability import logger

DAY_SECONDS = 86400


class DatabaseManager:
    """
    Owns the Motor client for one process.

    Storage is optional for this service: the lifespan hook calls `connect`
    and `ping`, and falls back to in-memory state when either raises.
    """

    def __init__(self, config: Settings = default_settings):
        self.config = config
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        if self._client is not None:
            return

        logger.bind(
            max_pool_size=self.config.mongodb_max_pool_size,
        ).info(f"Connecting to MongoDB database {self.config.mongodb_database}")
        self._client = AsyncIOMotorClient(
            self.config.mongodb_uri,
            maxPoolSize=self.config.mongodb_max_pool_size,
            minPoolSize=self.config.mongodb_min_pool_size,
            serverSelectionTimeoutMS=self.config.mongodb_server_selection_timeout_ms,
        )
        self._database = self._client[self.config.mongodb_database]

    async def disconnect(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if self._database is None:
            raise RuntimeError("MongoDB is not connected")
        return self._database

    async def ping(self) -> None:
        """Raises if the server is unreachable."""
        if self._client is None:
            raise RuntimeError("MongoDB is not connected")
        await self._client.admin.command("ping")

    async def create_indexes(self) -> None:
        db = self.database

        # (provider, message_id) is the idempotency key for inbound deliveries
        await db.deliveries.create_index(
            [("provider", 1), ("message_id", 1)],
            unique=True,
            name="idx_delivery_unique"
        )
        if self.config.delivery_retention_days > 0:
            await db.deliveries.create_index(
                "created_at",
                name="idx_delivery_ttl",
                expireAfterSeconds=self.config.delivery_retention_days * DAY_SECONDS
            )

        await db.notifications.create_index(
            [("is_read", 1), ("created_at", -1)],
            name="idx_unread_recent"
        )
        await db.notification_rules.create_index("rule_id", unique=True, name="idx_rule_id_unique")
        await db.notification_templates.create_index(
            "template_id", unique=True, name="idx_template_id_unique"
        )

        logger.info("MongoDB indexes ensured")


db_manager = DatabaseManager()
