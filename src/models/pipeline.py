from enum import StrEnum
from typing import Optional
from pydantic import BaseModel

from src.models.intent import IntentAnalysis
from src.models.outbound import SendResult


class ResponseRoute(StrEnum):
    AI = "ai"
    SCENARIO = "scenario"
    BUSINESS_HOURS = "business_hours"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class PipelineOutcome(BaseModel):
    """What the pipeline decided for one inbound message."""
    route: ResponseRoute
    analysis: Optional[IntentAnalysis] = None
    scenario: Optional[str] = None
    reply_text: Optional[str] = None
    escalate: bool = False
    send_result: Optional[SendResult] = None
    error: Optional[str] = None

    @property
    def ai_handled(self) -> bool:
        return self.route == ResponseRoute.AI

    @property
    def duplicate(self) -> bool:
        return self.route == ResponseRoute.DUPLICATE
