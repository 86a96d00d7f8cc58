"""
Common-Scenario Matcher

Keyword table for messages the AI path did not answer. Matching is a
case-insensitive substring test over a fixed, ordered table; the first
scenario that matches supplies the reply. Urgent keywords always escalate,
even when an earlier scenario already supplied the reply.
"""
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Tuple

from src.config import get_settings


class Scenario(StrEnum):
    GREETING = "greeting"
    PAYMENT = "payment"
    SUPPORT = "support"
    URGENT = "urgent"


SCENARIO_KEYWORDS: Tuple[Tuple[Scenario, Tuple[str, ...]], ...] = (
    (Scenario.GREETING, ("ciao", "salve", "buongiorno")),
    (Scenario.PAYMENT, ("pagamento", "saldo", "fattura")),
    (Scenario.SUPPORT, ("aiuto", "supporto", "problema")),
    (Scenario.URGENT, ("urgente", "importante", "subito")),
)

URGENT_KEYWORDS = dict(SCENARIO_KEYWORDS)[Scenario.URGENT]


@dataclass(frozen=True)
class ScenarioMatch:
    scenario: Scenario
    reply: str
    escalate: bool


class CommonScenarioMatcher:
    """
    Usage:
        matcher = CommonScenarioMatcher()
        match = matcher.match("Ciao, ho un problema", is_open=True)
        if match:
            send(match.reply)
    """

    def __init__(self, business_name: Optional[str] = None, support_phone: Optional[str] = None):
        settings = get_settings()
        self.business_name = business_name or settings.business_name
        self.support_phone = support_phone or settings.support_phone

    def reply_for(self, scenario: Scenario, is_open: bool) -> str:
        if scenario == Scenario.GREETING:
            if is_open:
                return f"Ciao! Sono l'assistente di {self.business_name}. Come posso aiutarti oggi?"
            return (
                f"Ciao! Sono l'assistente di {self.business_name}. "
                "Ti risponderemo durante l'orario di ufficio (9-18). Grazie!"
            )
        if scenario == Scenario.PAYMENT:
            return (
                "Per informazioni sui pagamenti e fatture, contatta il nostro ufficio "
                f"amministrativo al numero: {self.support_phone}"
            )
        if scenario == Scenario.SUPPORT:
            if is_open:
                return "Ti mettiamo subito in contatto con il nostro supporto tecnico. Attendi un momento..."
            return "Il supporto tecnico è disponibile dalle 9 alle 18. Ti ricontatteremo appena possibile!"
        return (
            "Messaggio ricevuto come urgente. Ti ricontatteremo entro 30 minuti "
            "durante l'orario di ufficio."
        )

    def match(self, body: str, is_open: bool) -> Optional[ScenarioMatch]:
        """First matching scenario, or None when no keyword is present."""
        text = body.lower()

        scenario = next(
            (s for s, keywords in SCENARIO_KEYWORDS if any(k in text for k in keywords)),
            None,
        )
        if scenario is None:
            return None

        escalate = any(k in text for k in URGENT_KEYWORDS)
        return ScenarioMatch(
            scenario=scenario,
            reply=self.reply_for(scenario, is_open),
            escalate=escalate,
        )
