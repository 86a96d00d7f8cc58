"""
Business Context Provider

Supplies the financial snapshot embedded in AI prompts. The back-office
application owns the movements and companies collections; this service only
reads aggregates from them and caches the result briefly, since the same
customer often sends several messages in a row.
"""
import datetime as dt
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, Tuple
from bson import Decimal128, ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from loguru import logger

from src.config import get_settings
from src.models.business_context import BusinessContext


class BusinessContextProvider(Protocol):
    async def get_context(self, customer: str) -> BusinessContext:
        ...


def json_safe(value: Any) -> Any:
    """Make a Mongo document safe to embed in a JSON prompt."""
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items() if k != "_id"}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    return value


class MongoBusinessContextProvider:
    """
    Usage:
        provider = MongoBusinessContextProvider(db_manager.database)
        context = await provider.get_context("+393451234567")

    Lookup failures return an empty context; the prompt just carries less.
    """

    RECENT_MOVEMENTS = 3
    HISTORY_LOOKBACK = 5

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        cache_seconds: Optional[int] = None,
        clock=time.monotonic,
    ):
        self.database = database
        self.cache_seconds = get_settings().business_context_cache_seconds if cache_seconds is None else cache_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[float, BusinessContext]] = {}

    async def get_context(self, customer: str) -> BusinessContext:
        cached = self._cache.get(customer)
        if cached and cached[0] > self._clock():
            return cached[1]

        try:
            context = await self._load(customer)
        except Exception as e:
            logger.error(f"Business context lookup failed: {e}")
            return BusinessContext.empty()

        self._cache[customer] = (self._clock() + self.cache_seconds, context)
        return context

    async def _load(self, customer: str) -> BusinessContext:
        movements = self.database["movements"]

        cursor = movements.find({"customer_phone": customer}).sort("date", -1).limit(self.HISTORY_LOOKBACK)
        history = await cursor.to_list(length=self.HISTORY_LOOKBACK)

        totals = {"income": 0.0, "expense": 0.0}
        async for row in movements.aggregate([
            {"$group": {"_id": "$type", "total": {"$sum": "$amount"}}}
        ]):
            kind = row.get("_id")
            if kind in totals:
                totals[kind] = float(json_safe(row.get("total") or 0))

        company_count = await self.database["companies"].count_documents({})

        return BusinessContext(
            recent_movements=[json_safe(m) for m in history[:self.RECENT_MOVEMENTS]],
            total_income=totals["income"],
            total_expenses=totals["expense"],
            company_count=company_count,
            customer_history=len(history),
        )
