"""Services package."""
from src.services.dispatch_service import DispatchService, UnsupportedOperationError
from src.services.fanout_service import InternalFanout
from src.services.notification_rules import NotificationRuleEngine, render_template

__all__ = [
    "DispatchService",
    "UnsupportedOperationError",
    "InternalFanout",
    "NotificationRuleEngine",
    "render_template",
]
