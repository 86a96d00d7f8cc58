"""
Internal Fanout

Turns pipeline outcomes into in-app notifications for the operations team
and records the result of every outbound send. Storage problems are logged
and never propagate back into the pipeline.
"""
from typing import Optional, Protocol
from loguru import logger

from src.models.inbound import Channel, InboundMessage
from src.models.notification import (
    InternalNotification,
    NotificationPriority,
    NotificationType,
)
from src.models.outbound import SendResult
from src.models.pipeline import PipelineOutcome
from src.utils.metrics import metrics
from src.utils.observability import log_business_event, preview


class NotificationStore(Protocol):
    async def create(self, document: InternalNotification) -> InternalNotification:
        ...


CHANNEL_LABELS = {
    Channel.WHATSAPP: "WhatsApp",
    Channel.SMS: "SMS",
    Channel.EMAIL: "Email",
    Channel.MESSENGER: "Messenger",
}


def build_notification(message: InboundMessage, priority: NotificationPriority) -> InternalNotification:
    urgent = priority == NotificationPriority.URGENT
    prefix = "🚨 URGENTE - " if urgent else ""
    return InternalNotification(
        title=f"{prefix}Nuovo messaggio {CHANNEL_LABELS[message.channel]}",
        message=f"Da: {message.sender}\nMessaggio: {preview(message.body, 100)}",
        type=NotificationType.WARNING if urgent else NotificationType.INFO,
        priority=priority,
        user_id=None,
        metadata={
            "source": message.channel.value,
            "provider": message.provider.value,
            "sender": message.sender,
            "message_id": message.message_id,
            "priority": priority.value,
        },
    )


class InternalFanout:
    """
    Usage:
        fanout = InternalFanout(notification_repository)
        await fanout.record(message, outcome)
    """

    def __init__(self, store: Optional[NotificationStore] = None):
        self.store = store

    def priority_for(self, outcome: PipelineOutcome) -> Optional[NotificationPriority]:
        """URGENT for escalations, NORMAL when the AI did not answer, else nothing."""
        if outcome.duplicate:
            return None
        if outcome.escalate:
            return NotificationPriority.URGENT
        if not outcome.ai_handled:
            return NotificationPriority.NORMAL
        return None

    async def record(self, message: InboundMessage, outcome: PipelineOutcome) -> Optional[InternalNotification]:
        priority = self.priority_for(outcome)
        if priority is None:
            return None

        notification = build_notification(message, priority)
        if outcome.analysis is not None:
            notification.metadata["intent"] = outcome.analysis.intent.value
            notification.metadata["urgency"] = outcome.analysis.urgency.value
        notification.metadata["route"] = outcome.route.value

        metrics.escalations.inc(priority=priority.value)
        if priority == NotificationPriority.URGENT:
            log_business_event(
                "escalation",
                provider=message.provider.value,
                channel=message.channel.value,
                message_id=message.message_id,
            )

        if self.store is None:
            logger.info(f"Internal notification (not persisted): {notification.title}")
            return notification

        try:
            return await self.store.create(notification)
        except Exception as e:
            logger.bind(message_id=message.message_id).error(f"Team notification error: {e}")
            return notification

    async def record_send_result(self, message: InboundMessage, result: SendResult) -> None:
        if result.success:
            logger.bind(
                source_message_id=message.message_id,
                message_id=result.message_id,
            ).info(f"📤 Reply delivered via {result.provider.value}/{result.channel.value}")
        else:
            logger.bind(
                source_message_id=message.message_id,
            ).warning(f"📤 Reply failed via {result.provider.value}/{result.channel.value}: {result.error}")
