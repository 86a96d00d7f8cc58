"""
Tests for the common-scenario keyword matcher.
"""
import pytest

from src.core.scenario_matcher import CommonScenarioMatcher, Scenario


@pytest.fixture
def matcher():
    return CommonScenarioMatcher(business_name="EasyCashFlows", support_phone="+39 123 456 7890")


class TestMatch:
    """Tests for keyword matching."""

    @pytest.mark.parametrize("body,scenario", [
        ("Ciao!", Scenario.GREETING),
        ("SALVE, vorrei informazioni", Scenario.GREETING),
        ("Ho una domanda sul saldo", Scenario.PAYMENT),
        ("La fattura 12 è sbagliata", Scenario.PAYMENT),
        ("Serve aiuto con l'app", Scenario.SUPPORT),
        ("È urgente", Scenario.URGENT),
    ])
    def test_scenarios(self, matcher, body, scenario):
        assert matcher.match(body, is_open=True).scenario == scenario

    def test_no_keyword(self, matcher):
        assert matcher.match("Grazie mille", is_open=True) is None

    def test_first_scenario_wins(self, matcher):
        """Greeting comes before payment in the table."""
        match = matcher.match("Buongiorno, domanda sul pagamento", is_open=True)
        assert match.scenario == Scenario.GREETING

    def test_urgent_keyword_escalates_even_when_not_first(self, matcher):
        match = matcher.match("Ciao, problema importante con la fattura", is_open=True)

        assert match.scenario == Scenario.GREETING
        assert match.escalate is True

    def test_plain_greeting_does_not_escalate(self, matcher):
        assert matcher.match("Ciao, buongiorno", is_open=False).escalate is False


class TestReplies:
    """Tests for scenario reply wording."""

    def test_greeting_open(self, matcher):
        reply = matcher.match("ciao", is_open=True).reply
        assert reply == "Ciao! Sono l'assistente di EasyCashFlows. Come posso aiutarti oggi?"

    def test_greeting_closed(self, matcher):
        reply = matcher.match("ciao", is_open=False).reply
        assert "orario di ufficio (9-18)" in reply

    def test_payment_mentions_support_phone(self, matcher):
        reply = matcher.match("pagamento", is_open=True).reply
        assert "+39 123 456 7890" in reply

    def test_support_depends_on_hours(self, matcher):
        assert "subito" in matcher.match("supporto", is_open=True).reply
        assert "dalle 9 alle 18" in matcher.match("supporto", is_open=False).reply

    def test_urgent_reply(self, matcher):
        match = matcher.match("subito per favore", is_open=False)
        assert match.escalate is True
        assert "30 minuti" in match.reply

    @pytest.mark.parametrize("scenario", list(Scenario))
    @pytest.mark.parametrize("is_open", [True, False])
    def test_replies_fit_sms(self, matcher, scenario, is_open):
        assert len(matcher.reply_for(scenario, is_open)) <= 160
