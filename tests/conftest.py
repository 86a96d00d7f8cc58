import pytest
import datetime as dt
from zoneinfo import ZoneInfo

from src.models.inbound import Channel, InboundMessage, Provider
from src.utils.metrics import metrics
from src.utils.retry import RetryPolicy
from tests.fakes import RecordingSleep

ROME = ZoneInfo("Europe/Rome")


@pytest.fixture(autouse=True)
def reset_metrics():
    """Every test starts from zeroed counters."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fast_retry(recording_sleep):
    """Default retry schedule (3 attempts, 1s doubling) without real waiting."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, sleep=recording_sleep)


@pytest.fixture
def whatsapp_message():
    """A Twilio WhatsApp message from an Italian mobile."""
    return InboundMessage(
        sender="+393451234567",
        recipient="+14155238886",
        body="Quando scade la mia fattura?",
        channel=Channel.WHATSAPP,
        provider=Provider.TWILIO,
        message_id="SM0001",
        sender_name="Mario Rossi",
    )


@pytest.fixture
def make_message():
    """Factory for InboundMessage with overridable fields."""
    def _make(body="Ciao", **overrides):
        fields = {
            "sender": "+393451234567",
            "recipient": "+14155238886",
            "body": body,
            "channel": Channel.WHATSAPP,
            "provider": Provider.TWILIO,
            "message_id": "SM0001",
        }
        fields.update(overrides)
        return InboundMessage(**fields)
    return _make


@pytest.fixture
def sunday_morning():
    """Sunday 2024-06-02 10:00 Europe/Rome: office closed."""
    return dt.datetime(2024, 6, 2, 10, 0, tzinfo=ROME)


@pytest.fixture
def tuesday_morning():
    """Tuesday 2024-06-04 10:00 Europe/Rome: office open."""
    return dt.datetime(2024, 6, 4, 10, 0, tzinfo=ROME)
