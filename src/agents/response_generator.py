"""
Response Generator

Drafts a short reply for a message the classifier judged safe to answer
automatically. Anything that is not a usable short reply comes back as None
and the pipeline falls through to the scenario matcher.
"""
from typing import Optional
from loguru import logger

from src.agents.ai_backend import AIBackend, AICall, default_retry_policy
from src.config import get_settings
from src.models.business_context import BusinessContext
from src.models.inbound import InboundMessage
from src.models.intent import IntentAnalysis
from src.utils.retry import RetryPolicy


def build_generation_instructions(business_name: str) -> str:
    return (
        f"Sei un assistente virtuale per {business_name}, un sistema di gestione "
        "finanziaria per PMI italiane. Rispondi sempre in italiano, in modo "
        "professionale e conciso."
    )


def build_generation_prompt(
    message: InboundMessage,
    analysis: IntentAnalysis,
    context: BusinessContext,
    max_chars: int
) -> str:
    analysis_json = analysis.model_dump_json(indent=2, exclude={"status"})
    return f"""
Genera una risposta professionale e utile per questo messaggio cliente ({message.channel.value}).

Messaggio originale: "{message.body}"
Analisi: {analysis_json}
Contesto business: {context.to_prompt()}

Linee guida per la risposta:
- Massimo {max_chars} caratteri (limite SMS)
- Tono professionale ma amichevole
- Include informazioni utili se disponibili
- Se è una domanda tecnica, suggerisci di contattare il supporto
- Se è urgente, garantisci una risposta rapida
- Se riguarda pagamenti, fornisci informazioni di contatto

Rispondi SOLO con il testo del messaggio, senza spiegazioni."""


def clean_reply(raw: Optional[str], max_chars: int) -> Optional[str]:
    """Trimmed reply, or None when empty or longer than max_chars."""
    if raw is None:
        return None
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1].strip()
    if not text:
        return None
    if len(text) > max_chars:
        logger.info(f"Generated reply discarded: {len(text)} chars > {max_chars}")
        return None
    return text


class ResponseGenerator:
    """
    Usage:
        generator = ResponseGenerator(backend)
        text = await generator.generate(message, analysis, context)
    """

    COMPONENT = "responder"

    def __init__(
        self,
        backend: Optional[AIBackend],
        retry_policy: Optional[RetryPolicy] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_chars: Optional[int] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.retry_policy = retry_policy or default_retry_policy()
        self.temperature = settings.generation_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.max_chars = max_chars or settings.max_response_chars
        self.instructions = build_generation_instructions(settings.business_name)

    async def generate(
        self,
        message: InboundMessage,
        analysis: IntentAnalysis,
        context: Optional[BusinessContext] = None
    ) -> Optional[str]:
        if self.backend is None:
            return None

        call = AICall(self.backend, self.retry_policy, self.COMPONENT)
        raw = await call.complete(
            self.instructions,
            build_generation_prompt(message, analysis, context or BusinessContext.empty(), self.max_chars),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            label="response generation",
        )
        if raw is None:
            return None

        reply = clean_reply(raw, self.max_chars)
        call.finish(
            "generated" if reply else "discarded",
            None if reply else "empty or over-long reply",
        )
        return reply
