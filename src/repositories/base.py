"""
Repository Base Class
Insert and lookup helpers shared by the collections this service touches.
"""
from typing import Generic, TypeVar, Type, Optional, Dict, Any
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
import datetime as dt

from ..models.base import MongoBaseModel
from ..utils.observability import logger

T = TypeVar("T", bound=MongoBaseModel)


class BaseRepository(Generic[T]):
    """
    Typed wrapper over one Motor collection.

    Subclasses pin the collection name and model:

        class DeliveryRepository(BaseRepository[DeliveryRecord]):
            def __init__(self, database):
                super().__init__(database, "deliveries", DeliveryRecord)
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        collection_name: str,
        model_class: Type[T]
    ):
        self.collection: AsyncIOMotorCollection = database[collection_name]
        self.collection_name = collection_name
        self.model_class = model_class

    async def create(self, document: T) -> T:
        """
        Insert `document`, stamping created_at/updated_at.

        Raises:
            pymongo.errors.DuplicateKeyError: If a unique index rejects it
        """
        now = dt.datetime.now(dt.UTC)
        document.created_at = now
        document.updated_at = now

        payload = document.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        result = await self.collection.insert_one(payload)

        document.id = str(result.inserted_id)
        logger.debug(f"Inserted {self.collection_name}/{document.id}")
        return document

    async def find_one(self, filter_dict: Dict[str, Any]) -> Optional[T]:
        doc = await self.collection.find_one(filter_dict)
        return None if doc is None else self._to_model(doc)

    def _to_model(self, doc: Dict[str, Any]) -> T:
        # Collections are shared with the back-office app; keep only our fields
        known = self.model_class.model_fields.keys()
        cleaned = {k: v for k, v in doc.items() if k in known}
        if "_id" in doc:
            cleaned["_id"] = str(doc["_id"])
        return self.model_class.model_validate(cleaned)
