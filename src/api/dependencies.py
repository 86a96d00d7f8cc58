"""
FastAPI Dependencies

Reusable dependencies for webhook authentication and app-state access.
"""
from typing import Callable, Optional
from fastapi import Request
from pydantic import SecretStr
from loguru import logger

from src.config import settings
from src.core.channel_normalizer import ChannelNormalizer
from src.core.webhook_pipeline import InboundMessagePipeline
from src.models.inbound import Provider
from src.utils.metrics import metrics
from src.utils.webhook_signature import SIGNATURE_HEADERS, WebhookSignatureValidator

_validator = WebhookSignatureValidator()


class WebhookAuthError(Exception):
    """Webhook rejected before processing; rendered as {"error": ...}."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def _secret_for(provider: Provider) -> Optional[SecretStr]:
    return {
        Provider.TWILIO: settings.twilio_auth_token,
        Provider.LINKMOBILITY: settings.linkmobility_api_key,
        Provider.FACEBOOK: settings.facebook_app_secret,
    }.get(provider)


def verified_body(provider: Provider) -> Callable:
    """
    Dependency factory returning the raw request body once its signature has
    been checked.

    Signatures are enforced in the production profile only. The check runs
    over the exact bytes received, before anything parses them.

    Raises:
        WebhookAuthError: 500 if the secret is not configured,
                          401 if the signature header is missing or wrong
    """
    header = SIGNATURE_HEADERS[provider]

    async def dependency(request: Request) -> bytes:
        body = await request.body()

        if not settings.enforce_signatures:
            return body

        secret = _secret_for(provider)
        if secret is None or not secret.get_secret_value():
            logger.error(f"❌ {provider.value} signing secret not configured but signatures are enforced")
            raise WebhookAuthError(500, "Webhook authentication not configured")

        signature = request.headers.get(header)
        if not signature:
            logger.warning(f"🚫 Missing {header} header")
            metrics.signature_failures.inc(provider=provider.value)
            raise WebhookAuthError(401, "Missing signature")

        if not _validator.validate(body, signature, secret.get_secret_value(), provider):
            logger.bind(
                signature=signature[:12] + "...",
            ).warning(f"🚫 Invalid {provider.value} signature")
            metrics.signature_failures.inc(provider=provider.value)
            raise WebhookAuthError(401, "Invalid signature")

        logger.debug(f"✅ {provider.value} signature validated")
        return body

    return dependency


async def raw_body(request: Request) -> bytes:
    """Body for providers that do not sign their webhooks."""
    return await request.body()


def get_pipeline(request: Request) -> InboundMessagePipeline:
    return request.app.state.pipeline


def get_normalizer(request: Request) -> ChannelNormalizer:
    normalizer = getattr(request.app.state, "normalizer", None)
    return normalizer or ChannelNormalizer()
