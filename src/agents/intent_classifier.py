"""
Intent Classification

Asks the AI backend what an inbound message wants, under a bounded retry
policy for rate limiting. The answer is validated against closed enums;
anything that does not validate becomes an explicit `unparseable` analysis
and a missing or failing backend becomes `unavailable`. Both carry
confidence 0, so they can never trigger an automatic reply.
"""
import json
import re
from typing import Optional
from pydantic import ValidationError
from loguru import logger

from src.agents.ai_backend import AIBackend, AICall, default_retry_policy
from src.config import get_settings
from src.models.business_context import BusinessContext
from src.models.inbound import InboundMessage
from src.models.intent import AnalysisStatus, ClassifierPayload, IntentAnalysis
from src.utils.retry import RetryPolicy


CLASSIFIER_INSTRUCTIONS = (
    "Sei un assistente AI specializzato nell'analisi di messaggi dei clienti "
    "per un'azienda italiana. Analizza i messaggi e determina se richiedono "
    "una risposta automatica intelligente. Rispondi esclusivamente in JSON."
)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_classification_prompt(message: InboundMessage, context: BusinessContext) -> str:
    return f"""
Analizza questo messaggio ({message.channel.value}) da un cliente e determina:
1. L'intento del messaggio
2. Se richiede una risposta automatica
3. Il livello di urgenza
4. I topic principali

Messaggio: "{message.body}"

Contesto business: {context.to_prompt()}

Rispondi in formato JSON:
{{
  "intent": "question|support|complaint|information|urgent|payment|other",
  "shouldRespond": boolean,
  "confidence": number (0-1),
  "urgency": "low|medium|high",
  "topics": ["topic1", "topic2"],
  "reasoning": "spiegazione breve"
}}"""


def parse_classification(raw: str) -> IntentAnalysis:
    """
    Validate raw model text into an IntentAnalysis.

    Tolerates a surrounding markdown code fence. Unknown enum labels,
    out-of-range confidence or non-JSON text yield `unparseable`.
    """
    text = _FENCE.sub("", raw.strip())
    try:
        payload = ClassifierPayload.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning(f"Classifier output rejected: {e.__class__.__name__}")
        return IntentAnalysis.unparseable()
    return payload.to_analysis()


class IntentClassifier:
    """
    Usage:
        classifier = IntentClassifier(backend)
        analysis = await classifier.classify(message, context)
        if analysis.allows_auto_response(0.7):
            ...
    """

    COMPONENT = "classifier"

    def __init__(
        self,
        backend: Optional[AIBackend],
        retry_policy: Optional[RetryPolicy] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.retry_policy = retry_policy or default_retry_policy()
        self.temperature = settings.classification_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.classification_max_tokens

    async def classify(
        self,
        message: InboundMessage,
        context: Optional[BusinessContext] = None
    ) -> IntentAnalysis:
        """Never raises: every failure maps to a zero-confidence analysis."""
        if self.backend is None:
            return IntentAnalysis.unavailable()

        call = AICall(self.backend, self.retry_policy, self.COMPONENT)
        raw = await call.complete(
            CLASSIFIER_INSTRUCTIONS,
            build_classification_prompt(message, context or BusinessContext.empty()),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            label="intent classification",
        )
        if raw is None:
            return IntentAnalysis.unavailable()

        analysis = parse_classification(raw)
        call.finish(
            analysis.status.value,
            None if analysis.status == AnalysisStatus.CLASSIFIED else "unparseable output",
        )
        return analysis
