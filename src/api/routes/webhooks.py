"""
Webhook Endpoints

Inbound webhooks for every provider. Each handler authenticates the raw
body, normalizes it into canonical events and schedules them on the
pipeline as background tasks, then acknowledges immediately. Malformed
payloads are logged and still acknowledged so providers do not redeliver.
"""
import datetime as dt
import json
from typing import Any, Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from src.api.dependencies import get_normalizer, get_pipeline, raw_body, verified_body
from src.config import settings
from src.core.channel_normalizer import ChannelNormalizer, verify_subscription
from src.core.webhook_pipeline import InboundMessagePipeline
from src.models.inbound import Provider, StatusUpdate
from src.utils.metrics import metrics
from src.utils.observability import log_webhook_event
from src.utils.webhook_signature import SIGNATURE_HEADERS

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'

ENDPOINTS = {
    Provider.TWILIO: "/webhooks/twilio/whatsapp",
    Provider.LINKMOBILITY: "/webhooks/linkmobility/whatsapp",
    Provider.SKEBBY: "/webhooks/skebby/sms",
    Provider.SENDGRID: "/webhooks/sendgrid/inbound",
    Provider.FACEBOOK: "/webhooks/facebook/messenger",
}

# Shared WhatsApp callback URL, routed by the x-provider header
STATUS_PATH = "/webhooks/whatsapp/status"
STATUS_PROVIDERS = {
    Provider.TWILIO.value: Provider.TWILIO,
    Provider.LINKMOBILITY.value: Provider.LINKMOBILITY,
}


def _parse_json(body: bytes, provider: Provider) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(body or b"null")
    except ValueError:
        log_webhook_event(provider.value, "malformed", reason="invalid JSON")
        return None
    if not isinstance(data, dict):
        log_webhook_event(provider.value, "malformed", reason="JSON body is not an object")
        return None
    return data


async def _parse_form(request: Request, provider: Provider) -> Optional[Dict[str, Any]]:
    try:
        form = await request.form()
    except Exception as e:
        log_webhook_event(provider.value, "malformed", reason=f"unreadable form: {e}")
        return None
    # Attachments arrive as UploadFile; only text fields are normalized
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _schedule(
    provider: Provider,
    fields: Optional[Dict[str, Any]],
    normalizer: ChannelNormalizer,
    pipeline: InboundMessagePipeline,
    background_tasks: BackgroundTasks,
) -> int:
    """Queue every event in the payload; returns how many were queued."""
    events = normalizer.normalize_raw(provider, fields) if fields is not None else []

    if not events:
        metrics.webhooks_total.inc(provider=provider.value, outcome="malformed")
        log_webhook_event(provider.value, "skipped")
        return 0

    for event in events:
        if isinstance(event, StatusUpdate):
            metrics.webhooks_total.inc(provider=provider.value, outcome="status")
            background_tasks.add_task(pipeline.handle_status_update, event)
        else:
            metrics.webhooks_total.inc(provider=provider.value, outcome="message")
            background_tasks.add_task(pipeline.handle, event)
    return len(events)


async def _accept_twilio(
    request: Request,
    pipeline: InboundMessagePipeline,
    normalizer: ChannelNormalizer,
    background_tasks: BackgroundTasks,
) -> Response:
    fields = await _parse_form(request, Provider.TWILIO)
    _schedule(Provider.TWILIO, fields, normalizer, pipeline, background_tasks)
    return Response(content=EMPTY_TWIML, media_type="text/xml")


def _accept_linkmobility(
    body: bytes,
    pipeline: InboundMessagePipeline,
    normalizer: ChannelNormalizer,
    background_tasks: BackgroundTasks,
) -> Dict[str, Any]:
    fields = _parse_json(body, Provider.LINKMOBILITY)
    _schedule(Provider.LINKMOBILITY, fields, normalizer, pipeline, background_tasks)
    return {"success": True}


@router.post("/twilio/whatsapp")
async def twilio_whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body(Provider.TWILIO)),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    """
    Twilio WhatsApp/SMS webhook.

    Request format: application/x-www-form-urlencoded (Twilio standard)
    Response format: empty TwiML; replies are sent through the Messages API
    """
    return await _accept_twilio(request, pipeline, normalizer, background_tasks)


@router.post("/linkmobility/whatsapp")
async def linkmobility_whatsapp_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body(Provider.LINKMOBILITY)),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    return _accept_linkmobility(body, pipeline, normalizer, background_tasks)


@router.post("/whatsapp/status")
async def whatsapp_status_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    provider_name: Optional[str] = Header(None, alias="x-provider"),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    """
    Shared WhatsApp callback URL. The x-provider header picks the handler;
    each provider's signature rules still apply.
    """
    provider = STATUS_PROVIDERS.get((provider_name or "").strip().lower())
    if provider is None:
        logger.warning(f"🚫 Status callback without a known x-provider header: {provider_name!r}")
        return JSONResponse(status_code=400, content={"error": "Provider not specified"})

    body = await verified_body(provider)(request)
    if provider == Provider.TWILIO:
        return await _accept_twilio(request, pipeline, normalizer, background_tasks)
    return _accept_linkmobility(body, pipeline, normalizer, background_tasks)


@router.post("/skebby/sms")
async def skebby_sms_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(raw_body),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    fields = _parse_json(body, Provider.SKEBBY)
    _schedule(Provider.SKEBBY, fields, normalizer, pipeline, background_tasks)
    return {"success": True}


@router.post("/sendgrid/inbound")
async def sendgrid_inbound_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    body: bytes = Depends(raw_body),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    """
    SendGrid Inbound Parse.

    SendGrid posts multipart/form-data; JSON is accepted for relayed events.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        fields = _parse_json(body, Provider.SENDGRID)
    else:
        fields = await _parse_form(request, Provider.SENDGRID)

    queued = _schedule(Provider.SENDGRID, fields, normalizer, pipeline, background_tasks)
    return {"success": True, "processed": queued}


@router.get("/facebook/messenger")
async def facebook_messenger_verify(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Messenger subscription handshake: echo hub.challenge on a token match."""
    expected = settings.facebook_verify_token.get_secret_value() if settings.facebook_verify_token else None
    echoed = verify_subscription(mode, token, challenge, expected)

    if echoed is None:
        logger.bind(mode=mode).warning("🚫 Messenger webhook verification failed")
        return JSONResponse(status_code=403, content={"error": "Verification failed"})

    logger.info("✅ Messenger webhook verified")
    return PlainTextResponse(content=echoed)


@router.post("/facebook/messenger")
async def facebook_messenger_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_body(Provider.FACEBOOK)),
    pipeline: InboundMessagePipeline = Depends(get_pipeline),
    normalizer: ChannelNormalizer = Depends(get_normalizer),
):
    fields = _parse_json(body, Provider.FACEBOOK)
    _schedule(Provider.FACEBOOK, fields, normalizer, pipeline, background_tasks)
    # Messenger only needs a 200; the body is informational
    return {"success": True}


@router.get("/test")
async def webhook_test():
    """Liveness of the webhook system plus the endpoint inventory."""
    return {
        "success": True,
        "message": "Webhook system operational",
        "timestamp": dt.datetime.now(dt.UTC).isoformat(),
        "endpoints": [
            ENDPOINTS[Provider.TWILIO],
            ENDPOINTS[Provider.LINKMOBILITY],
            STATUS_PATH,
            ENDPOINTS[Provider.SKEBBY],
            ENDPOINTS[Provider.SENDGRID],
            f"{ENDPOINTS[Provider.FACEBOOK]} (GET verify, POST events)",
        ],
    }


@router.get("/info")
async def webhook_info(request: Request):
    """Fully-qualified webhook URLs and the headers each provider must send."""
    base_url = (settings.public_base_url or f"{request.url.scheme}://{request.headers.get('host', 'localhost')}").rstrip("/")

    webhook_urls = {}
    for provider, path in ENDPOINTS.items():
        header = SIGNATURE_HEADERS.get(provider)
        webhook_urls[provider.value] = {
            "incoming": f"{base_url}{path}",
            "method": "POST",
            "signatureHeader": header,
            "signed": header is not None,
        }
    webhook_urls[Provider.FACEBOOK.value]["verify"] = f"{base_url}{ENDPOINTS[Provider.FACEBOOK]}"
    for name in STATUS_PROVIDERS:
        webhook_urls[name]["status"] = f"{base_url}{STATUS_PATH}"
        webhook_urls[name]["headers"] = {"x-provider": name}

    return {
        "webhookUrls": webhook_urls,
        "security": {
            "production": settings.environment == "production",
            "signatureValidation": "enabled" if settings.enforce_signatures else "disabled",
            "supportedMethods": ["POST", "GET"],
        },
    }
