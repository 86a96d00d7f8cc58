"""
Outbound sender contract.

One sender per (provider, channel) pair. A sender either returns the
provider's message id or raises SenderError; converting failures into
SendResults is the dispatch service's job.
"""
from typing import Optional, Protocol
import httpx

from src.config import get_settings
from src.models.inbound import Channel, Provider
from src.utils.phone_normalizer import PhoneNormalizationError, get_phone_normalizer


class SenderError(Exception):
    """A provider refused or failed a send."""
    pass


class SenderNotConfiguredError(SenderError):
    """Credentials for the provider are missing."""
    pass


class MessageSender(Protocol):
    provider: Provider
    channel: Channel

    async def send(self, recipient: str, text: str, subject: Optional[str] = None) -> Optional[str]:
        """
        Deliver text to recipient.

        Returns:
            Provider message id, if the provider returns one

        Raises:
            SenderError: If the provider rejected the message
        """
        ...


def to_e164(recipient: str) -> str:
    """Normalized phone recipient, or SenderError for a number we cannot route."""
    try:
        return get_phone_normalizer().normalize(recipient).e164
    except PhoneNormalizationError as e:
        raise SenderError(str(e)) from e


class HttpSender:
    """Shared plumbing for senders that talk to a REST API through httpx."""

    provider: Provider
    channel: Channel

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None
    ):
        self._transport = transport
        self._timeout = timeout or get_settings().provider_http_timeout_seconds

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            detail = response.json()
        except ValueError:
            detail = response.text
        if isinstance(detail, dict):
            error = detail.get("error")
            if isinstance(error, dict):
                detail = error.get("message") or error
            else:
                detail = detail.get("message") or error or detail
        raise SenderError(f"{self.provider.value} HTTP {response.status_code}: {detail}")
