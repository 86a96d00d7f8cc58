"""
Notification Event Endpoint

Business-event trigger path for the notification rule engine. The
back-office application posts an event (rule id, provider id, trigger data)
and gets the dispatch result back.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from src.models.notification_rule import RuleDispatchResult
from src.services.notification_rules import BUILTIN_TEMPLATES, NotificationRuleEngine

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule_id: str = Field(..., alias="ruleId")
    provider_id: str = Field(..., alias="providerId")
    data: Dict[str, Any] = Field(default_factory=dict)
    template_id: Optional[str] = Field(None, alias="templateId")


@router.post("/events", response_model=RuleDispatchResult)
async def notification_event(event: NotificationEvent, request: Request) -> RuleDispatchResult:
    """
    Evaluate one rule against the event data and dispatch it.

    Rule-level outcomes (conditions not met, wrong time, unsupported timing,
    all sends failed) are returned in the body with status 200; only an
    unknown rule or template is an HTTP error.
    """
    engine: NotificationRuleEngine = request.app.state.rule_engine
    rules = getattr(request.app.state, "rule_repository", None)
    templates = getattr(request.app.state, "template_repository", None)

    if rules is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification rules storage not available"
        )

    rule = await rules.get_rule(event.rule_id)
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {event.rule_id} not found")

    template_id = event.template_id or rule.template_id
    template = await templates.get_template(template_id) if templates is not None else None
    template = template or BUILTIN_TEMPLATES.get(template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Template {template_id} not found")

    return await engine.dispatch(rule, template, event.data, event.provider_id)
