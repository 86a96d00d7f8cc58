"""
Notification Rule Repositories
Operator-defined rules and templates. Read-only from this service.
"""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase

from .base import BaseRepository
from ..models.notification_rule import NotificationRule, NotificationTemplate


class NotificationRuleRepository(BaseRepository[NotificationRule]):

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "notification_rules", NotificationRule)

    async def get_rule(self, rule_id: str) -> Optional[NotificationRule]:
        return await self.find_one({"rule_id": rule_id})


class NotificationTemplateRepository(BaseRepository[NotificationTemplate]):

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, "notification_templates", NotificationTemplate)

    async def get_template(self, template_id: str) -> Optional[NotificationTemplate]:
        return await self.find_one({"template_id": template_id})
