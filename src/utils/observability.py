"""
Structured Logging & Observability
Production-grade logging that's both human-readable and machine-parseable.
"""
import sys
from loguru import logger
from typing import Any, Dict
from src.config import get_settings


def configure_logging():
    """
    Configure loguru for production observability.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,
        )

    logger.info(
        f"Logging configured: level={settings.log_level}, "
        f"structured={settings.enable_structured_logging}, env={settings.environment}"
    )


def preview(text: str | None, limit: int = 50) -> str:
    """Short, log-safe preview of a message body."""
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def log_webhook_event(
    provider: str,
    event: str,
    message_id: str | None = None,
    **context
):
    """
    Structured logging for webhook deliveries.

    Args:
        provider: Originating provider (twilio, linkmobility, ...)
        event: What happened (received, status_update, rejected, malformed)
        message_id: Provider message identifier, if known
        **context: Additional context (channel, status, reason, ...)
    """
    log_data = {
        "event_type": "webhook",
        "provider": provider,
        "event": event,
    }
    if message_id:
        log_data["message_id"] = message_id
    log_data.update(context)

    logger.bind(**log_data).info(f"Webhook | {provider} | {event}")


def log_ai_call(
    component: str,
    model: str,
    attempts: int,
    duration_ms: float,
    success: bool = True,
    error: str | None = None
):
    """
    Structured logging for AI backend calls.

    Args:
        component: Which component made the call (classifier, responder)
        model: Model used
        attempts: Number of attempts including retries
        duration_ms: Total latency including backoff
        success: Whether the call produced a usable result
        error: Error message if failed
    """
    log_data = {
        "event_type": "ai_call",
        "component": component,
        "model": model,
        "attempts": attempts,
        "duration_ms": round(duration_ms, 2),
        "success": success
    }

    if error:
        log_data["error"] = error

    level = "INFO" if success else "WARNING"
    logger.bind(**log_data).log(
        level,
        f"AI Call: {component} | {model} | attempts={attempts}"
    )


def log_business_event(
    event_type: str,
    **details: Dict[str, Any]
):
    """
    Log business-relevant events (escalations, rule dispatches).

    Args:
        event_type: Type of event (e.g., "escalation", "rule_dispatched")
        **details: Event-specific data
    """
    logger.bind(event_type=event_type, **details).success(f"Business Event: {event_type}")
