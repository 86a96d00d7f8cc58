"""
Notification Rule Engine

Evaluates operator-defined notification rules against business events
(balance dropped, invoice due, payment received) and fans the rendered
template out to the rule's recipients through the dispatch service.

Rules are read-only here; the engine never mutates them.
"""
import asyncio
import datetime as dt
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo
from loguru import logger

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.models.notification_rule import (
    ConditionOperator,
    NotificationCondition,
    NotificationRule,
    NotificationTemplate,
    NotificationTiming,
    RecipientType,
    RuleDispatchResult,
    TimingDecision,
    TimingType,
)
from src.models.outbound import SendResult
from src.services.dispatch_service import DispatchService, UnsupportedOperationError
from src.utils.metrics import metrics
from src.utils.observability import log_business_event


OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.GT: operator.gt,
    ConditionOperator.LT: operator.lt,
    ConditionOperator.EQ: operator.eq,
    ConditionOperator.GTE: operator.ge,
    ConditionOperator.LTE: operator.le,
}

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")

DELAY_NOT_SUPPORTED = "delay timing is not yet supported"


def render_template(body: str, variables: Mapping[str, Any]) -> str:
    """
    Replace {{name}} placeholders with values from variables.

    Placeholders without a value are left as they are, so a missing field
    is visible in the delivered text rather than silently blanked.
    """
    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, body)


# Italian utility templates shipped with the product
BUILTIN_TEMPLATES: Dict[str, NotificationTemplate] = {
    t.template_id: t for t in (
        NotificationTemplate(
            template_id="invoice_due_reminder",
            name="Promemoria Fattura",
            header="Promemoria Fattura",
            body=(
                "Gentile {{customer_name}}, la fattura n. {{invoice_number}} di €{{amount}} "
                "scade il {{due_date}}. Per maggiori dettagli: {{invoice_link}}"
            ),
            footer="EasyCashFlows - Gestione Finanziaria",
        ),
        NotificationTemplate(
            template_id="payment_confirmation",
            name="Pagamento Ricevuto",
            header="Pagamento Ricevuto",
            body=(
                "Gentile {{customer_name}}, abbiamo ricevuto il pagamento di €{{amount}} "
                "per la fattura {{invoice_number}}. Grazie!"
            ),
            footer="EasyCashFlows",
        ),
        NotificationTemplate(
            template_id="cash_flow_low",
            name="Alert Cash Flow",
            header="Alert Cash Flow",
            body=(
                "Attenzione: il saldo del conto {{account_name}} è sceso a €{{balance}}. "
                "Soglia minima: €{{threshold}}."
            ),
            footer="EasyCashFlows - Alert Sistema",
        ),
        NotificationTemplate(
            template_id="verification_code",
            name="Codice di verifica",
            body="Il tuo codice di verifica EasyCashFlows è: {{verification_code}}. Valido per 10 minuti.",
            footer="Non condividere questo codice",
        ),
    )
}


@dataclass(frozen=True)
class ProviderBinding:
    provider: Provider
    channel: Channel


class NotificationRuleEngine:
    """
    Usage:
        engine = NotificationRuleEngine(dispatch)
        engine.register_provider("whatsapp-main", Provider.TWILIO, Channel.WHATSAPP)
        result = await engine.dispatch(rule, template, {"balance": 500}, "whatsapp-main")
    """

    def __init__(
        self,
        dispatch_service: DispatchService,
        timezone: Optional[str] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self.dispatch_service = dispatch_service
        self.tz = ZoneInfo(timezone or get_settings().business_timezone)
        self._clock = clock or (lambda: dt.datetime.now(self.tz))
        self._providers: Dict[str, ProviderBinding] = {}

    def register_provider(self, provider_id: str, provider: Provider, channel: Channel) -> None:
        """Bind an operator-facing provider id to a (provider, channel) pair."""
        self._providers[provider_id] = ProviderBinding(provider=provider, channel=channel)
        logger.debug(f"Notification provider '{provider_id}' -> {provider.value}/{channel.value}")

    @property
    def provider_ids(self) -> List[str]:
        return sorted(self._providers)

    def register_dispatch_senders(self) -> None:
        """Expose every configured sender under the id "<provider>-<channel>"."""
        for provider, channel in self.dispatch_service.registered:
            self.register_provider(f"{provider.value}-{channel.value}", provider, channel)

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def evaluate_condition(self, condition: NotificationCondition, trigger_data: Mapping[str, Any]) -> bool:
        compare = OPERATORS.get(condition.operator)
        if compare is None:
            logger.warning(f"Unknown condition operator '{condition.operator}' evaluates false")
            return False
        if condition.field not in trigger_data:
            return False
        try:
            return bool(compare(trigger_data[condition.field], condition.value))
        except TypeError:
            # e.g. comparing a string field against a numeric threshold
            return False

    def evaluate(self, rule: NotificationRule, trigger_data: Mapping[str, Any]) -> bool:
        """All conditions ANDed; a rule without conditions always matches."""
        if not rule.conditions:
            return True
        return all(self.evaluate_condition(c, trigger_data) for c in rule.conditions)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def now(self) -> dt.datetime:
        moment = self._clock()
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def should_send_now(
        self,
        timing: Optional[NotificationTiming],
        now: Optional[dt.datetime] = None
    ) -> TimingDecision:
        """
        immediate -> SEND.
        schedule  -> SEND only on a listed weekday (Sunday = 0) and at exactly
                     schedule_time, to the minute.
        delay     -> NOT_SUPPORTED until an external scheduler exists.
        """
        if timing is None or timing.type == TimingType.IMMEDIATE:
            return TimingDecision.SEND

        if timing.type == TimingType.DELAY:
            return TimingDecision.NOT_SUPPORTED

        local = now if now is not None else self.now()
        if local.tzinfo is not None:
            local = local.astimezone(self.tz)

        sunday_based_day = (local.weekday() + 1) % 7
        if timing.schedule_days is not None and sunday_based_day not in timing.schedule_days:
            return TimingDecision.WAIT
        if timing.schedule_time is not None and local.strftime("%H:%M") != timing.schedule_time:
            return TimingDecision.WAIT
        return TimingDecision.SEND

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def resolve_recipients(self, rule: NotificationRule, trigger_data: Mapping[str, Any]) -> List[str]:
        if rule.recipient_type == RecipientType.USER:
            phone = trigger_data.get("userPhoneNumber")
            return [str(phone)] if phone else []

        if rule.recipient_type == RecipientType.COMPANY_CONTACTS:
            contacts = trigger_data.get("companyContacts") or []
            if isinstance(contacts, str):
                contacts = [contacts]
            return [str(c) for c in contacts if c]

        return list(rule.custom_recipients)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        rule: NotificationRule,
        template: NotificationTemplate,
        trigger_data: Mapping[str, Any],
        provider_id: str,
        now: Optional[dt.datetime] = None,
    ) -> RuleDispatchResult:
        """
        Evaluate the rule and, if it fires, send the rendered template to
        every recipient concurrently. Success means at least one send
        succeeded.
        """
        binding = self._providers.get(provider_id)
        if binding is None:
            return self._finish(rule, RuleDispatchResult(
                success=False, error=f"Provider {provider_id} not found"
            ))

        if not rule.is_active:
            return self._finish(rule, RuleDispatchResult(success=False, error="Rule is inactive"))

        if not self.evaluate(rule, trigger_data):
            return self._finish(rule, RuleDispatchResult(success=False, error="Conditions not met"))

        decision = self.should_send_now(rule.timing, now)
        if decision == TimingDecision.NOT_SUPPORTED:
            return self._finish(rule, RuleDispatchResult(
                success=False, error=DELAY_NOT_SUPPORTED, not_supported=True
            ))
        if decision == TimingDecision.WAIT:
            return self._finish(rule, RuleDispatchResult(success=False, error="Not the right time to send"))

        recipients = self.resolve_recipients(rule, trigger_data)
        if not recipients:
            return self._finish(rule, RuleDispatchResult(success=False, error="No recipients"))

        text = render_template(template.body, trigger_data)

        try:
            self.dispatch_service.sender_for(binding.provider, binding.channel)
        except UnsupportedOperationError as e:
            return self._finish(rule, RuleDispatchResult(
                success=False,
                error=str(e),
                not_supported=True,
                recipients_attempted=len(recipients),
            ))

        results: List[SendResult] = await asyncio.gather(*(
            self.dispatch_service.send(
                binding.provider,
                binding.channel,
                recipient,
                text,
                subject=template.header,
            )
            for recipient in recipients
        ))

        succeeded = [r for r in results if r.success]
        for failed in (r for r in results if not r.success):
            logger.bind(
                rule_id=rule.rule_id,
            ).warning(f"Rule {rule.rule_id}: send to recipient failed: {failed.error}")

        return self._finish(rule, RuleDispatchResult(
            success=bool(succeeded),
            message_id=succeeded[0].message_id if succeeded else None,
            error=None if succeeded else "All sends failed",
            recipients_attempted=len(results),
            recipients_succeeded=len(succeeded),
        ))

    def _finish(self, rule: NotificationRule, result: RuleDispatchResult) -> RuleDispatchResult:
        if result.success:
            outcome = "sent"
        elif result.not_supported:
            outcome = "not_supported"
        else:
            outcome = "skipped" if result.recipients_attempted == 0 else "failed"
        metrics.rule_dispatches.inc(result=outcome)

        log_business_event(
            "rule_dispatched",
            rule_id=rule.rule_id,
            outcome=outcome,
            error=result.error,
            recipients_attempted=result.recipients_attempted,
            recipients_succeeded=result.recipients_succeeded,
        )
        return result
