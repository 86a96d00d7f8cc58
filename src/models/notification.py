from enum import StrEnum
from typing import Any, Dict, Optional
from pydantic import Field

from src.models.base import MongoBaseModel


class NotificationPriority(StrEnum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"


class NotificationType(StrEnum):
    INFO = "info"
    WARNING = "warning"


class InternalNotification(MongoBaseModel):
    """
    In-app notification for the operations team.
    user_id None means "every admin".
    """
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.NORMAL
    user_id: Optional[str] = None
    is_read: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
