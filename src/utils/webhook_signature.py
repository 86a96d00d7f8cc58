"""
Webhook Signature Verification

Verifies that a webhook body genuinely originated from the claimed provider
using the provider's HMAC scheme over the raw request body.

Schemes:
- Twilio:        HMAC-SHA1,   base64, header X-Twilio-Signature (optional "sha1=" prefix)
- LinkMobility:  HMAC-SHA256, hex,    header X-Link-Signature
- Facebook:      HMAC-SHA256, hex,    header X-Hub-Signature-256 ("sha256=" prefix)
"""

import hmac
import hashlib
import base64
from typing import Callable, Dict
from loguru import logger

from src.models.inbound import Provider


SIGNATURE_HEADERS: Dict[Provider, str] = {
    Provider.TWILIO: "X-Twilio-Signature",
    Provider.LINKMOBILITY: "X-Link-Signature",
    Provider.FACEBOOK: "X-Hub-Signature-256",
}


def _twilio_digest(payload: bytes, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), payload, hashlib.sha1)
    return base64.b64encode(mac.digest()).decode("utf-8")


def _hex_sha256_digest(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def _strip_prefix(signature: str, prefix: str) -> str:
    signature = signature.strip()
    if signature.startswith(prefix):
        return signature[len(prefix):]
    return signature


class WebhookSignatureValidator:
    """
    Validates provider webhook signatures.

    All comparisons go through hmac.compare_digest on bytes, which does not
    exit early on the first differing byte and treats a length mismatch as a
    plain mismatch.

    Usage:
        validator = WebhookSignatureValidator()
        ok = validator.validate(raw_body, header_value, secret, Provider.TWILIO)
    """

    def __init__(self):
        self._schemes: Dict[Provider, tuple[Callable[[bytes, str], str], str]] = {
            Provider.TWILIO: (_twilio_digest, "sha1="),
            Provider.LINKMOBILITY: (_hex_sha256_digest, "sha256="),
            Provider.FACEBOOK: (_hex_sha256_digest, "sha256="),
        }

    def supports(self, provider: Provider) -> bool:
        return provider in self._schemes

    def compute_signature(self, payload: bytes, secret: str, provider: Provider) -> str:
        """
        Compute the signature a provider would send for this payload.

        Raises:
            ValueError: If the provider has no signing scheme
        """
        if provider not in self._schemes:
            raise ValueError(f"Provider {provider} does not sign webhooks")
        digest_fn, _ = self._schemes[provider]
        return digest_fn(payload, secret)

    def validate(
        self,
        payload: bytes,
        signature: str,
        secret: str,
        provider: Provider
    ) -> bool:
        """
        Validate a webhook signature.

        Args:
            payload: Raw request body, exactly as received
            signature: Signature header value
            secret: Shared secret (auth token / API key / app secret)
            provider: Provider that claims to have sent the payload

        Returns:
            True if signature is valid, False otherwise
        """
        if not signature or not secret or provider not in self._schemes:
            return False

        digest_fn, prefix = self._schemes[provider]
        try:
            expected = digest_fn(payload, secret)
        except (TypeError, ValueError) as e:
            logger.error(f"Signature computation failed for {provider}: {e}")
            return False

        provided = _strip_prefix(signature, prefix)

        return hmac.compare_digest(
            expected.encode("utf-8"),
            provided.encode("utf-8", errors="replace")
        )


def validate_webhook_signature(
    payload: bytes,
    signature: str,
    secret: str,
    provider: Provider
) -> bool:
    """
    Convenience function to validate a webhook signature.

    Args:
        payload: Raw request body
        signature: Signature header value
        secret: Shared secret
        provider: Claimed provider

    Returns:
        True if valid, False otherwise
    """
    return WebhookSignatureValidator().validate(payload, signature, secret, provider)
