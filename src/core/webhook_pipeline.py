"""
Inbound Message Pipeline

Orchestrates the handling of one canonical inbound message:

    duplicate check -> business context -> classify -> reply strategy
    (AI / common scenario / business hours) -> dispatch -> internal fanout

One pipeline is built per process with all collaborators injected; it keeps
no per-message state. `handle` never raises: by the time it runs the
provider has already been acknowledged, so failures are only logged and
reported in the returned outcome.
"""
from collections import OrderedDict
from typing import Optional, Protocol
from pydantic import ValidationError
from loguru import logger

from src.agents.intent_classifier import IntentClassifier
from src.agents.response_generator import ResponseGenerator
from src.config import get_settings
from src.core.scenario_matcher import CommonScenarioMatcher
from src.models.business_context import BusinessContext
from src.models.inbound import InboundMessage, StatusUpdate
from src.models.outbound import OutboundResponse, SendResult
from src.models.pipeline import PipelineOutcome, ResponseRoute
from src.services.business_context import BusinessContextProvider
from src.services.dispatch_service import DispatchService, UnsupportedOperationError
from src.services.fanout_service import InternalFanout
from src.utils.business_hours import BusinessHoursPolicy
from src.utils.metrics import Timer, metrics
from src.utils.observability import log_webhook_event, preview


class DeliveryLedger(Protocol):
    async def is_duplicate(self, message: InboundMessage) -> bool:
        ...


class InMemoryDeliveryLedger:
    """
    Process-local ledger used when MongoDB is unavailable.
    Remembers the most recent `capacity` delivery keys.
    """

    def __init__(self, capacity: int = 10_000):
        self.capacity = capacity
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()

    async def is_duplicate(self, message: InboundMessage) -> bool:
        key = message.dedup_key
        if key in self._seen:
            self._seen.move_to_end(key)
            return True
        self._seen[key] = None
        if len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return False


class InboundMessagePipeline:
    """
    Usage:
        pipeline = InboundMessagePipeline(
            classifier=IntentClassifier(backend),
            generator=ResponseGenerator(backend),
            dispatch=DispatchService.from_settings(),
        )
        outcome = await pipeline.handle(message)
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        generator: ResponseGenerator,
        dispatch: DispatchService,
        matcher: Optional[CommonScenarioMatcher] = None,
        business_hours: Optional[BusinessHoursPolicy] = None,
        fanout: Optional[InternalFanout] = None,
        ledger: Optional[DeliveryLedger] = None,
        context_provider: Optional[BusinessContextProvider] = None,
        confidence_threshold: Optional[float] = None,
    ):
        self.classifier = classifier
        self.generator = generator
        self.dispatch = dispatch
        self.matcher = matcher or CommonScenarioMatcher()
        self.business_hours = business_hours or BusinessHoursPolicy()
        self.fanout = fanout or InternalFanout()
        self.ledger = ledger or InMemoryDeliveryLedger()
        self.context_provider = context_provider
        self.confidence_threshold = (
            get_settings().auto_response_confidence_threshold
            if confidence_threshold is None else confidence_threshold
        )

    async def handle(self, message: InboundMessage) -> PipelineOutcome:
        log_webhook_event(
            message.provider.value,
            "received",
            message_id=message.message_id,
            channel=message.channel.value,
            body_preview=preview(message.body),
        )

        with Timer(metrics.pipeline_duration):
            try:
                outcome = await self._process(message)
            except Exception as e:
                logger.exception(f"Pipeline failed for {message.provider.value}/{message.message_id}: {e}")
                outcome = PipelineOutcome(route=ResponseRoute.FAILED, error=str(e))

        metrics.pipeline_routes.inc(route=outcome.route.value)
        return outcome

    async def _process(self, message: InboundMessage) -> PipelineOutcome:
        if await self._is_duplicate(message):
            return PipelineOutcome(route=ResponseRoute.DUPLICATE)

        context = await self._context_for(message)
        analysis = await self.classifier.classify(message, context)

        route: Optional[ResponseRoute] = None
        reply: Optional[str] = None
        scenario: Optional[str] = None
        escalate = analysis.is_urgent

        if analysis.allows_auto_response(self.confidence_threshold):
            reply = await self.generator.generate(message, analysis, context)
            if reply:
                route = ResponseRoute.AI

        if route is None:
            match = self.matcher.match(message.body, self.business_hours.is_open())
            if match is not None:
                route = ResponseRoute.SCENARIO
                reply = match.reply
                scenario = match.scenario.value
                escalate = escalate or match.escalate

        if route is None:
            route = ResponseRoute.BUSINESS_HOURS
            reply = self.business_hours.status_message()

        logger.bind(
            message_id=message.message_id,
            intent=analysis.intent.value,
            confidence=analysis.confidence,
            analysis_status=analysis.status.value,
            escalate=escalate,
        ).info(f"Reply strategy: {route.value}")

        outcome = PipelineOutcome(
            route=route,
            analysis=analysis,
            scenario=scenario,
            reply_text=reply,
            escalate=escalate,
        )
        outcome.send_result, outcome.error = await self._send(message, reply)

        await self.fanout.record(message, outcome)
        return outcome

    async def _is_duplicate(self, message: InboundMessage) -> bool:
        try:
            return await self.ledger.is_duplicate(message)
        except Exception as e:
            logger.error(f"Duplicate check failed, processing anyway: {e}")
            return False

    async def _context_for(self, message: InboundMessage) -> BusinessContext:
        if self.context_provider is None:
            return BusinessContext.empty()
        try:
            return await self.context_provider.get_context(message.sender)
        except Exception as e:
            logger.error(f"Context retrieval error: {e}")
            return BusinessContext.empty()

    async def _send(
        self,
        message: InboundMessage,
        text: str
    ) -> tuple[Optional[SendResult], Optional[str]]:
        try:
            response = OutboundResponse(
                provider=message.provider,
                channel=message.channel,
                recipient=message.sender,
                text=text,
                source_message_id=message.message_id,
                subject=message.subject,
            )
        except ValidationError as e:
            logger.error(f"Reply rejected before dispatch: {e.errors()[0]['msg']}")
            return None, "reply rejected"

        try:
            result = await self.dispatch.send_response(response)
        except UnsupportedOperationError as e:
            logger.bind(message_id=message.message_id).warning(str(e))
            return None, str(e)

        await self.fanout.record_send_result(message, result)
        return result, result.error

    async def handle_status_update(self, update: StatusUpdate) -> None:
        log_webhook_event(
            update.provider.value,
            "status_update",
            message_id=update.message_id,
            status=update.status,
        )
        recorder = getattr(self.ledger, "record_status", None)
        if recorder is None:
            return
        try:
            await recorder(update)
        except Exception as e:
            logger.error(f"Status update not recorded: {e}")
