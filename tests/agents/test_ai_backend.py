"""
Tests for the shared AI call bookkeeping.
"""
import pytest
from loguru import logger

from src.agents.ai_backend import AICall, build_ai_backend, default_retry_policy
from src.config import Settings
from src.utils.metrics import metrics
from tests.fakes import FakeBackend, RateLimitError


@pytest.fixture
def ai_records():
    """Capture the structured AI-call log lines."""
    captured = []
    handler_id = logger.add(
        lambda message: captured.append(message.record),
        level="DEBUG",
        filter=lambda record: record["extra"].get("event_type") == "ai_call",
    )
    yield captured
    logger.remove(handler_id)


class TestAICall:
    """Attempts, metrics and the log line are recorded once per request."""

    @pytest.mark.asyncio
    async def test_success_is_recorded_by_finish(self, fast_retry, ai_records):
        backend = FakeBackend(RateLimitError("429"), "ok")
        call = AICall(backend, fast_retry, component="classifier")

        raw = await call.complete("istruzioni", "prompt", temperature=0.1, max_tokens=50)

        assert raw == "ok"
        assert call.attempts == 2
        assert ai_records == []

        call.finish("classified")

        assert metrics.ai_calls.get(component="classifier", result="classified") == 1
        assert metrics.ai_retries.get(component="classifier") == 1
        assert len(ai_records) == 1
        assert ai_records[0]["extra"]["attempts"] == 2
        assert ai_records[0]["extra"]["success"] is True

    @pytest.mark.asyncio
    async def test_backend_receives_generation_settings(self, fast_retry):
        backend = FakeBackend("ok")
        call = AICall(backend, fast_retry, component="responder")

        await call.complete("istruzioni", "prompt", temperature=0.7, max_tokens=100)

        assert backend.calls == [{
            "instructions": "istruzioni",
            "prompt": "prompt",
            "temperature": 0.7,
            "max_tokens": 100,
        }]

    @pytest.mark.asyncio
    async def test_exhausted_is_recorded_once(self, fast_retry, ai_records):
        backend = FakeBackend(RateLimitError("429 Too Many Requests"))
        call = AICall(backend, fast_retry, component="responder")

        raw = await call.complete("istruzioni", "prompt", temperature=0.7, max_tokens=100)

        assert raw is None
        assert call.attempts == 3
        assert metrics.ai_calls.get(component="responder", result="exhausted") == 1
        assert metrics.ai_retries.get(component="responder") == 2
        assert len(ai_records) == 1
        assert ai_records[0]["level"].name == "WARNING"
        assert ai_records[0]["extra"]["error"] == "429 Too Many Requests"

    @pytest.mark.asyncio
    async def test_other_error_is_not_retried(self, fast_retry, recording_sleep, ai_records):
        backend = FakeBackend(ValueError("bad request {'field': 'prompt'}"))
        call = AICall(backend, fast_retry, component="classifier")

        raw = await call.complete("istruzioni", "prompt", temperature=0.1, max_tokens=50)

        assert raw is None
        assert call.attempts == 1
        assert recording_sleep.delays == []
        assert metrics.ai_calls.get(component="classifier", result="error") == 1
        assert metrics.ai_retries.get(component="classifier") == 0
        assert ai_records[0]["extra"]["error"] == "bad request {'field': 'prompt'}"


class TestDefaults:

    def test_retry_policy_from_settings(self, monkeypatch):
        configured = Settings(_env_file=None, ai_max_attempts=4, ai_retry_base_delay_seconds=0.5)
        monkeypatch.setattr("src.agents.ai_backend.get_settings", lambda: configured)

        policy = default_retry_policy()

        assert policy.max_attempts == 4
        assert policy.schedule() == [0.5, 1.0, 2.0]

    def test_no_backend_without_api_key(self, monkeypatch):
        monkeypatch.setattr("src.agents.ai_backend.get_settings", lambda: Settings(_env_file=None, openai_api_key=None))

        assert build_ai_backend() is None
