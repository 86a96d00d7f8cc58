"""
Tests for the intent classifier.
Verifies rate-limit retries, output validation and the zero-confidence
fallbacks.
"""
import json
import pytest

from src.agents.intent_classifier import (
    CLASSIFIER_INSTRUCTIONS,
    IntentClassifier,
    build_classification_prompt,
    parse_classification,
)
from src.models.business_context import BusinessContext
from src.models.intent import AnalysisStatus, Intent, Urgency
from src.utils.metrics import metrics
from tests.fakes import FakeBackend, RateLimitError


def classifier_json(**overrides):
    payload = {
        "intent": "payment",
        "shouldRespond": True,
        "confidence": 0.9,
        "urgency": "medium",
        "topics": ["Fattura", "scadenza"],
        "reasoning": "Domanda su una fattura",
    }
    payload.update(overrides)
    return json.dumps(payload)


class TestParseClassification:
    """Tests for validating raw model output."""

    def test_valid_payload(self):
        analysis = parse_classification(classifier_json())

        assert analysis.status == AnalysisStatus.CLASSIFIED
        assert analysis.intent == Intent.PAYMENT
        assert analysis.should_respond is True
        assert analysis.confidence == 0.9
        assert analysis.urgency == Urgency.MEDIUM
        assert analysis.topics == frozenset({"fattura", "scadenza"})

    def test_markdown_fence_tolerated(self):
        raw = "```json\n" + classifier_json() + "\n```"
        assert parse_classification(raw).status == AnalysisStatus.CLASSIFIED

    def test_unknown_intent_is_unparseable(self):
        """Closed enums: an unknown label never defaults to something else."""
        analysis = parse_classification(classifier_json(intent="sales"))

        assert analysis.status == AnalysisStatus.UNPARSEABLE
        assert analysis.confidence == 0.0
        assert analysis.should_respond is False

    def test_confidence_out_of_range(self):
        analysis = parse_classification(classifier_json(confidence=1.4))
        assert analysis.status == AnalysisStatus.UNPARSEABLE

    def test_not_json(self):
        analysis = parse_classification("Il cliente chiede della fattura.")
        assert analysis.status == AnalysisStatus.UNPARSEABLE

    def test_json_array(self):
        assert parse_classification("[1, 2]").status == AnalysisStatus.UNPARSEABLE


class TestPrompt:
    """Tests for prompt construction."""

    def test_prompt_embeds_message_and_context(self, whatsapp_message):
        context = BusinessContext(total_income=1500.0, company_count=2)

        prompt = build_classification_prompt(whatsapp_message, context)

        assert whatsapp_message.body in prompt
        assert "whatsapp" in prompt
        assert '"total_income": 1500.0' in prompt
        assert "shouldRespond" in prompt


class TestIntentClassifier:
    """Tests for IntentClassifier.classify."""

    @pytest.mark.asyncio
    async def test_classifies_message(self, whatsapp_message, fast_retry):
        backend = FakeBackend(classifier_json())
        classifier = IntentClassifier(backend, retry_policy=fast_retry)

        analysis = await classifier.classify(whatsapp_message)

        assert analysis.intent == Intent.PAYMENT
        assert len(backend.calls) == 1
        call = backend.calls[0]
        assert call["instructions"] == CLASSIFIER_INSTRUCTIONS
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 500
        assert metrics.ai_calls.get(component="classifier", result="classified") == 1

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self, whatsapp_message, fast_retry, recording_sleep):
        """429 twice then success: three calls with 1s and 2s waits."""
        backend = FakeBackend(
            RateLimitError("429"),
            RateLimitError("429"),
            classifier_json(),
        )
        classifier = IntentClassifier(backend, retry_policy=fast_retry)

        analysis = await classifier.classify(whatsapp_message)

        assert analysis.status == AnalysisStatus.CLASSIFIED
        assert len(backend.calls) == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert metrics.ai_retries.get(component="classifier") == 2

    @pytest.mark.asyncio
    async def test_rate_limited_every_time(self, whatsapp_message, fast_retry, recording_sleep):
        """Always 429: three calls, then an unavailable zero-confidence analysis."""
        backend = FakeBackend(RateLimitError("429"))
        classifier = IntentClassifier(backend, retry_policy=fast_retry)

        analysis = await classifier.classify(whatsapp_message)

        assert len(backend.calls) == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert analysis.status == AnalysisStatus.UNAVAILABLE
        assert analysis.confidence == 0.0
        assert analysis.allows_auto_response(0.0) is False
        assert metrics.ai_calls.get(component="classifier", result="exhausted") == 1

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_not_retried(self, whatsapp_message, fast_retry, recording_sleep):
        backend = FakeBackend(RuntimeError("connection reset"))
        classifier = IntentClassifier(backend, retry_policy=fast_retry)

        analysis = await classifier.classify(whatsapp_message)

        assert len(backend.calls) == 1
        assert recording_sleep.delays == []
        assert analysis.status == AnalysisStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unparseable_output(self, whatsapp_message, fast_retry):
        backend = FakeBackend("Non saprei.")
        classifier = IntentClassifier(backend, retry_policy=fast_retry)

        analysis = await classifier.classify(whatsapp_message)

        assert analysis.status == AnalysisStatus.UNPARSEABLE
        assert analysis.confidence == 0.0
        assert metrics.ai_calls.get(component="classifier", result="unparseable") == 1

    @pytest.mark.asyncio
    async def test_no_backend(self, whatsapp_message):
        """AI disabled: unavailable without any call."""
        classifier = IntentClassifier(None)

        analysis = await classifier.classify(whatsapp_message)

        assert analysis.status == AnalysisStatus.UNAVAILABLE
        assert analysis.should_respond is False
