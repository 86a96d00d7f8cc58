"""
Repositories Layer
MongoDB persistence for deliveries, internal notifications and notification rules.
"""
from .connection import db_manager, DatabaseManager
from .base import BaseRepository
from .deliveries import DeliveryRepository
from .notifications import InternalNotificationRepository
from .rules import NotificationRuleRepository, NotificationTemplateRepository

__all__ = [
    "db_manager",
    "DatabaseManager",
    "BaseRepository",
    "DeliveryRepository",
    "InternalNotificationRepository",
    "NotificationRuleRepository",
    "NotificationTemplateRepository",
]
