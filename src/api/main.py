"""
FastAPI Application

Main entry point for the EasyCashFlows webhook engine.
Handles application lifecycle and router mounting.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from src.agents.ai_backend import build_ai_backend
from src.agents.intent_classifier import IntentClassifier
from src.agents.response_generator import ResponseGenerator
from src.api.dependencies import WebhookAuthError
from src.api.routes import health_router, webhooks_router, metrics_router, notifications_router
from src.config import settings
from src.core.channel_normalizer import ChannelNormalizer
from src.core.webhook_pipeline import InboundMessagePipeline, InMemoryDeliveryLedger
from src.repositories import (
    db_manager,
    DeliveryRepository,
    InternalNotificationRepository,
    NotificationRuleRepository,
    NotificationTemplateRepository,
)
from src.services.business_context import MongoBusinessContextProvider
from src.services.dispatch_service import DispatchService
from src.services.fanout_service import InternalFanout
from src.services.notification_rules import NotificationRuleEngine
from src.utils.business_hours import BusinessHoursPolicy
from src.utils.observability import configure_logging


async def connect_storage() -> bool:
    """Connect to MongoDB and create indexes. False if the server is unreachable."""
    try:
        await db_manager.connect()
        await db_manager.ping()
        await db_manager.create_indexes()
    except Exception as e:
        logger.error(f"MongoDB unavailable, continuing with in-memory ledger: {e}")
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle: startup and shutdown events.

    Startup:
    - Configure logging
    - Connect to MongoDB (optional: degrades to in-memory dedup)
    - Build the AI backend, dispatch service, pipeline and rule engine

    Shutdown:
    - Disconnect from MongoDB
    """
    configure_logging()
    logger.info("Starting webhook engine...")

    mongo_connected = await connect_storage()

    classifier_backend = build_ai_backend(settings.classifier_model)
    responder_backend = build_ai_backend(settings.responder_model)
    dispatch = DispatchService.from_settings()

    if mongo_connected:
        database = db_manager.database
        ledger = DeliveryRepository(database)
        fanout = InternalFanout(InternalNotificationRepository(database))
        context_provider = MongoBusinessContextProvider(database)
        app.state.rule_repository = NotificationRuleRepository(database)
        app.state.template_repository = NotificationTemplateRepository(database)
    else:
        ledger = InMemoryDeliveryLedger()
        fanout = InternalFanout()
        context_provider = None
        app.state.rule_repository = None
        app.state.template_repository = None

    business_hours = BusinessHoursPolicy()

    pipeline = InboundMessagePipeline(
        classifier=IntentClassifier(classifier_backend),
        generator=ResponseGenerator(responder_backend),
        dispatch=dispatch,
        business_hours=business_hours,
        fanout=fanout,
        ledger=ledger,
        context_provider=context_provider,
    )

    rule_engine = NotificationRuleEngine(dispatch)
    rule_engine.register_dispatch_senders()

    # Store in app state for access in routes
    app.state.pipeline = pipeline
    app.state.normalizer = ChannelNormalizer()
    app.state.dispatch = dispatch
    app.state.rule_engine = rule_engine
    app.state.mongo_connected = mongo_connected

    logger.bind(
        environment=settings.environment,
        signatures_enforced=settings.enforce_signatures,
        ai_enabled=settings.ai_enabled,
    ).info("API server ready to receive webhooks")

    yield

    logger.info("Shutting down webhook engine...")
    await db_manager.disconnect()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="EasyCashFlows Webhook Engine",
    description="Multi-channel inbound message webhooks with AI triage and notification rules",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(WebhookAuthError)
async def webhook_auth_error_handler(request: Request, exc: WebhookAuthError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Mount routers
app.include_router(health_router)
app.include_router(webhooks_router)
app.include_router(metrics_router)
app.include_router(notifications_router)
