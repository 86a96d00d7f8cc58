"""
AI Backend

Thin seam between the intent classifier / response generator and the
language model. The classifier and generator only ever see `AIBackend`,
which keeps them testable with a scripted fake and lets the whole AI path be
switched off when no API key is configured.
"""
import time
from typing import Dict, Optional, Protocol
from pydantic_ai import Agent
from loguru import logger

from src.config import get_settings
from src.utils.metrics import metrics
from src.utils.observability import log_ai_call
from src.utils.retry import RetryExhaustedError, RetryPolicy


class AIBackend(Protocol):
    """Anything that turns (instructions, prompt) into raw model text."""

    model_name: str

    async def complete(
        self,
        instructions: str,
        prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        ...


class PydanticAIBackend:
    """
    AIBackend on top of pydantic-ai.

    One Agent is created lazily per distinct instruction text and reused,
    so the classifier and the generator can share a backend instance.
    Errors from the provider (including HTTP 429) propagate unchanged; the
    retry policy upstream decides what to do with them.
    """

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._agents: Dict[str, Agent[None, str]] = {}

    def _agent_for(self, instructions: str) -> Agent[None, str]:
        agent = self._agents.get(instructions)
        if agent is None:
            agent = Agent(
                self.model_name,
                output_type=str,
                instructions=instructions,
            )
            self._agents[instructions] = agent
            logger.info(f"AI agent initialized with model: {self.model_name}")
        return agent

    async def complete(
        self,
        instructions: str,
        prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        agent = self._agent_for(instructions)
        result = await agent.run(
            prompt,
            model_settings={"temperature": temperature, "max_tokens": max_tokens},
        )
        return result.output


def build_ai_backend(model_name: Optional[str] = None) -> Optional[AIBackend]:
    """
    Backend for the configured model, or None when AI is disabled.

    Callers treat None as "backend unavailable" and go straight to fallbacks.
    """
    settings = get_settings()
    if not settings.ai_enabled:
        logger.warning("⚠️ OPENAI_API_KEY not configured - AI classification disabled")
        return None
    return PydanticAIBackend(model_name or settings.classifier_model)


def default_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        max_attempts=settings.ai_max_attempts,
        base_delay=settings.ai_retry_base_delay_seconds,
        max_delay=settings.ai_retry_max_delay_seconds,
    )


class AICall:
    """
    One model request made on behalf of a component.

    The request runs under the retry policy; attempts are counted across
    retries and the outcome is recorded exactly once, as an `ai_calls`
    result, extra attempts on `ai_retries`, and one `log_ai_call` line.
    A failed request is recorded by `complete` itself; a successful one is
    recorded by the caller through `finish`, once it knows what the output
    was worth.

    Usage:
        call = AICall(backend, policy, component="classifier")
        raw = await call.complete(instructions, prompt, temperature=0.1, max_tokens=500)
        if raw is None:
            return fallback
        call.finish("classified")
    """

    def __init__(self, backend: AIBackend, retry_policy: RetryPolicy, component: str):
        self.backend = backend
        self.retry_policy = retry_policy
        self.component = component
        self.attempts = 0
        self._start = time.perf_counter()

    async def complete(
        self,
        instructions: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        label: str = "AI call",
    ) -> Optional[str]:
        """Raw model text, or None once the failure has been recorded."""

        async def attempt() -> str:
            self.attempts += 1
            return await self.backend.complete(
                instructions,
                prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            )

        self._start = time.perf_counter()
        try:
            return await self.retry_policy.run(attempt, label=label)
        except RetryExhaustedError as e:
            self.finish("exhausted", str(e.last_error))
        except Exception as e:
            self.finish("error", str(e))
        return None

    def finish(self, result: str, error: Optional[str] = None) -> None:
        if self.attempts > 1:
            metrics.ai_retries.inc(self.attempts - 1, component=self.component)
        metrics.ai_calls.inc(component=self.component, result=result)
        log_ai_call(
            component=self.component,
            model=self.backend.model_name,
            attempts=self.attempts,
            duration_ms=(time.perf_counter() - self._start) * 1000,
            success=error is None,
            error=error,
        )
