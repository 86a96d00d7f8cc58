"""
Tests for the notification rule engine.
Covers conditions, timing, recipients and fan-out dispatch.
"""
import datetime as dt
import pytest
from zoneinfo import ZoneInfo

from src.models.inbound import Channel, Provider
from src.models.notification_rule import (
    NotificationCondition,
    NotificationRule,
    NotificationTemplate,
    NotificationTiming,
    RecipientType,
    TimingDecision,
    TimingType,
)
from src.services.dispatch_service import DispatchService
from src.services.notification_rules import (
    BUILTIN_TEMPLATES,
    DELAY_NOT_SUPPORTED,
    NotificationRuleEngine,
    render_template,
)
from src.utils.metrics import metrics
from tests.fakes import FakeSender

ROME = ZoneInfo("Europe/Rome")
MONDAY_0900 = dt.datetime(2024, 6, 3, 9, 0, tzinfo=ROME)


def make_rule(**overrides):
    fields = {
        "rule_id": "low-balance",
        "name": "Saldo basso",
        "conditions": [NotificationCondition(field="balance", operator="lt", value=1000)],
        "timing": NotificationTiming(type=TimingType.IMMEDIATE),
        "recipient_type": RecipientType.CUSTOM,
        "custom_recipients": ["+393451234567"],
        "template_id": "cash_flow_low",
    }
    fields.update(overrides)
    return NotificationRule(**fields)


@pytest.fixture
def sms_sender():
    return FakeSender(Provider.SKEBBY, Channel.SMS, message_id="ord-1")


@pytest.fixture
def engine(sms_sender):
    engine = NotificationRuleEngine(DispatchService([sms_sender]), timezone="Europe/Rome")
    engine.register_provider("sms-main", Provider.SKEBBY, Channel.SMS)
    return engine


@pytest.fixture
def template():
    return BUILTIN_TEMPLATES["cash_flow_low"]


class TestConditions:
    """Tests for condition evaluation."""

    def test_lt_threshold(self, engine):
        rule = make_rule()
        assert engine.evaluate(rule, {"balance": 500}) is True
        assert engine.evaluate(rule, {"balance": 5000}) is False

    @pytest.mark.parametrize("operator,value,expected", [
        ("gt", 100, True),
        ("gte", 500, True),
        ("lte", 499, False),
        ("eq", 500, True),
        ("eq", 501, False),
    ])
    def test_operators(self, engine, operator, value, expected):
        condition = NotificationCondition(field="balance", operator=operator, value=value)
        assert engine.evaluate_condition(condition, {"balance": 500}) is expected

    def test_unknown_operator_is_false(self, engine):
        condition = NotificationCondition(field="balance", operator="contains", value=5)
        assert engine.evaluate_condition(condition, {"balance": 5}) is False

    def test_missing_field_is_false(self, engine):
        assert engine.evaluate(make_rule(), {"other": 1}) is False

    def test_incomparable_types_are_false(self, engine):
        assert engine.evaluate(make_rule(), {"balance": "molto"}) is False

    def test_conditions_are_anded(self, engine):
        rule = make_rule(conditions=[
            NotificationCondition(field="balance", operator="lt", value=1000),
            NotificationCondition(field="days_overdue", operator="gte", value=7),
        ])
        assert engine.evaluate(rule, {"balance": 500, "days_overdue": 10}) is True
        assert engine.evaluate(rule, {"balance": 500, "days_overdue": 3}) is False

    def test_no_conditions_always_match(self, engine):
        assert engine.evaluate(make_rule(conditions=None), {}) is True


class TestTiming:
    """Tests for should_send_now."""

    def test_immediate(self, engine):
        assert engine.should_send_now(NotificationTiming(type=TimingType.IMMEDIATE)) == TimingDecision.SEND
        assert engine.should_send_now(None) == TimingDecision.SEND

    def test_schedule_exact_minute(self, engine):
        """Monday (1, Sunday = 0) at 09:00 fires; 09:01 does not."""
        timing = NotificationTiming(type=TimingType.SCHEDULE, schedule_days={1}, schedule_time="09:00")

        assert engine.should_send_now(timing, MONDAY_0900) == TimingDecision.SEND
        assert engine.should_send_now(timing, MONDAY_0900 + dt.timedelta(minutes=1)) == TimingDecision.WAIT

    def test_schedule_wrong_day(self, engine):
        timing = NotificationTiming(type=TimingType.SCHEDULE, schedule_days={0, 6}, schedule_time="09:00")
        assert engine.should_send_now(timing, MONDAY_0900) == TimingDecision.WAIT

    def test_sunday_is_zero(self, engine):
        timing = NotificationTiming(type=TimingType.SCHEDULE, schedule_days={0})
        sunday = dt.datetime(2024, 6, 2, 15, 30, tzinfo=ROME)
        assert engine.should_send_now(timing, sunday) == TimingDecision.SEND

    def test_schedule_uses_business_timezone(self, engine):
        """07:00 UTC on a June Monday is 09:00 in Rome."""
        timing = NotificationTiming(type=TimingType.SCHEDULE, schedule_days={1}, schedule_time="09:00")
        utc = dt.datetime(2024, 6, 3, 7, 0, tzinfo=dt.UTC)
        assert engine.should_send_now(timing, utc) == TimingDecision.SEND

    def test_delay_not_supported(self, engine):
        timing = NotificationTiming(type=TimingType.DELAY, delay_minutes=30)
        assert engine.should_send_now(timing) == TimingDecision.NOT_SUPPORTED

    def test_invalid_schedule_rejected(self):
        with pytest.raises(ValueError):
            NotificationTiming(type=TimingType.SCHEDULE, schedule_days={7})
        with pytest.raises(ValueError):
            NotificationTiming(type=TimingType.SCHEDULE, schedule_time="9:00")


class TestRecipients:
    """Tests for recipient resolution."""

    def test_user(self, engine):
        rule = make_rule(recipient_type=RecipientType.USER)
        assert engine.resolve_recipients(rule, {"userPhoneNumber": "+393451234567"}) == ["+393451234567"]
        assert engine.resolve_recipients(rule, {}) == []

    def test_company_contacts(self, engine):
        rule = make_rule(recipient_type=RecipientType.COMPANY_CONTACTS)
        data = {"companyContacts": ["+393451234567", "", "+393331234567"]}
        assert engine.resolve_recipients(rule, data) == ["+393451234567", "+393331234567"]

    def test_custom(self, engine):
        rule = make_rule(custom_recipients=["a", "b"])
        assert engine.resolve_recipients(rule, {}) == ["a", "b"]


class TestRenderTemplate:
    """Tests for placeholder substitution."""

    def test_substitutes_values(self):
        assert render_template("Saldo €{{balance}}", {"balance": 500}) == "Saldo €500"

    def test_tolerates_spaces(self):
        assert render_template("Ciao {{ name }}", {"name": "Mario"}) == "Ciao Mario"

    def test_unknown_placeholder_left_as_is(self):
        assert render_template("Soglia {{threshold}}", {}) == "Soglia {{threshold}}"


class TestDispatch:
    """Tests for NotificationRuleEngine.dispatch."""

    @pytest.mark.asyncio
    async def test_sends_rendered_template(self, engine, template, sms_sender):
        data = {"balance": 500, "account_name": "Principale", "threshold": 1000}

        result = await engine.dispatch(make_rule(), template, data, "sms-main")

        assert result.success is True
        assert result.message_id == "ord-1"
        assert result.recipients_succeeded == 1

    @pytest.mark.asyncio
    async def test_partial_failure_with_structured_error(self, template):
        sender = FakeSender(
            Provider.SKEBBY,
            Channel.SMS,
            fail_for={"+390000000000"},
            error="skebby HTTP 400: {'code': 'E42'}",
        )
        engine = NotificationRuleEngine(DispatchService([sender]))
        engine.register_provider("sms-main", Provider.SKEBBY, Channel.SMS)
        rule = make_rule(custom_recipients=["+390000000000", "+393451234567"])

        result = await engine.dispatch(rule, template, {"balance": 500}, "sms-main")

        assert result.success is True
        assert result.recipients_attempted == 2
        assert result.recipients_succeeded == 1
        assert sms_sender.sent[0]["text"] == (
            "Attenzione: il saldo del conto Principale è sceso a €500. Soglia minima: €1000."
        )
        assert sms_sender.sent[0]["subject"] == "Alert Cash Flow"
        assert metrics.rule_dispatches.get(result="sent") == 1

    @pytest.mark.asyncio
    async def test_conditions_not_met(self, engine, template, sms_sender):
        result = await engine.dispatch(make_rule(), template, {"balance": 5000}, "sms-main")

        assert result.success is False
        assert result.error == "Conditions not met"
        assert sms_sender.sent == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self, engine, template):
        result = await engine.dispatch(make_rule(), template, {"balance": 500}, "whatsapp-x")
        assert result.error == "Provider whatsapp-x not found"

    @pytest.mark.asyncio
    async def test_inactive_rule(self, engine, template):
        result = await engine.dispatch(make_rule(is_active=False), template, {"balance": 500}, "sms-main")
        assert result.error == "Rule is inactive"

    @pytest.mark.asyncio
    async def test_wrong_time(self, engine, template):
        rule = make_rule(timing=NotificationTiming(
            type=TimingType.SCHEDULE, schedule_days={1}, schedule_time="09:00"
        ))

        result = await engine.dispatch(
            rule, template, {"balance": 500}, "sms-main", now=MONDAY_0900 + dt.timedelta(minutes=1)
        )

        assert result.success is False
        assert result.error == "Not the right time to send"

    @pytest.mark.asyncio
    async def test_delay_reports_not_supported(self, engine, template, sms_sender):
        rule = make_rule(timing=NotificationTiming(type=TimingType.DELAY, delay_minutes=15))

        result = await engine.dispatch(rule, template, {"balance": 500}, "sms-main")

        assert result.success is False
        assert result.not_supported is True
        assert result.error == DELAY_NOT_SUPPORTED
        assert sms_sender.sent == []
        assert metrics.rule_dispatches.get(result="not_supported") == 1

    @pytest.mark.asyncio
    async def test_no_recipients(self, engine, template):
        rule = make_rule(recipient_type=RecipientType.USER)
        result = await engine.dispatch(rule, template, {"balance": 500}, "sms-main")
        assert result.error == "No recipients"

    @pytest.mark.asyncio
    async def test_partial_failure_still_succeeds(self, template):
        sender = FakeSender(Provider.SKEBBY, Channel.SMS, fail_for={"+390000000000"})
        engine = NotificationRuleEngine(DispatchService([sender]))
        engine.register_provider("sms-main", Provider.SKEBBY, Channel.SMS)
        rule = make_rule(custom_recipients=["+393451234567", "+390000000000"])

        result = await engine.dispatch(rule, template, {"balance": 500}, "sms-main")

        assert result.success is True
        assert result.recipients_attempted == 2
        assert result.recipients_succeeded == 1

    @pytest.mark.asyncio
    async def test_all_sends_failed(self, template):
        sender = FakeSender(Provider.SKEBBY, Channel.SMS, fail_for={"+390000000000"})
        engine = NotificationRuleEngine(DispatchService([sender]))
        engine.register_provider("sms-main", Provider.SKEBBY, Channel.SMS)
        rule = make_rule(custom_recipients=["+390000000000"])

        result = await engine.dispatch(rule, template, {"balance": 500}, "sms-main")

        assert result.success is False
        assert result.error == "All sends failed"

    @pytest.mark.asyncio
    async def test_bound_provider_without_sender(self, engine, template):
        engine.register_provider("email-main", Provider.SENDGRID, Channel.EMAIL)

        result = await engine.dispatch(make_rule(), template, {"balance": 500}, "email-main")

        assert result.success is False
        assert result.not_supported is True
        assert "not yet supported" in result.error


class TestProviderRegistry:
    """Tests for provider id bindings."""

    def test_register_dispatch_senders(self, sms_sender):
        engine = NotificationRuleEngine(DispatchService([
            sms_sender,
            FakeSender(Provider.TWILIO, Channel.WHATSAPP),
        ]))

        engine.register_dispatch_senders()

        assert engine.provider_ids == ["skebby-sms", "twilio-whatsapp"]


def test_builtin_templates_are_italian():
    reminder = BUILTIN_TEMPLATES["invoice_due_reminder"]
    assert isinstance(reminder, NotificationTemplate)
    assert "{{invoice_number}}" in reminder.body
    assert reminder.language == "it"
