from enum import StrEnum
from typing import FrozenSet
from pydantic import BaseModel, ConfigDict, Field


class Intent(StrEnum):
    QUESTION = "question"
    SUPPORT = "support"
    COMPLAINT = "complaint"
    INFORMATION = "information"
    URGENT = "urgent"
    PAYMENT = "payment"
    OTHER = "other"


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisStatus(StrEnum):
    CLASSIFIED = "classified"
    UNPARSEABLE = "unparseable"   # backend answered, answer did not validate
    UNAVAILABLE = "unavailable"   # backend missing, failing or rate-limited out


class IntentAnalysis(BaseModel):
    """The output contract of the intent classifier. Never persisted."""
    model_config = ConfigDict(frozen=True)

    intent: Intent
    should_respond: bool
    confidence: float = Field(ge=0.0, le=1.0)
    urgency: Urgency
    topics: FrozenSet[str] = Field(default_factory=frozenset)
    status: AnalysisStatus = AnalysisStatus.CLASSIFIED

    @property
    def is_urgent(self) -> bool:
        return self.intent == Intent.URGENT or self.urgency == Urgency.HIGH

    def allows_auto_response(self, threshold: float) -> bool:
        return (
            self.status == AnalysisStatus.CLASSIFIED
            and self.should_respond
            and self.confidence >= threshold
        )

    @classmethod
    def _zero(cls, status: AnalysisStatus) -> "IntentAnalysis":
        return cls(
            intent=Intent.OTHER,
            should_respond=False,
            confidence=0.0,
            urgency=Urgency.LOW,
            topics=frozenset(),
            status=status,
        )

    @classmethod
    def unparseable(cls) -> "IntentAnalysis":
        return cls._zero(AnalysisStatus.UNPARSEABLE)

    @classmethod
    def unavailable(cls) -> "IntentAnalysis":
        return cls._zero(AnalysisStatus.UNAVAILABLE)


class ClassifierPayload(BaseModel):
    """
    Wire shape the AI backend is asked to return.
    Enums are closed: any unknown label fails validation instead of defaulting.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    intent: Intent
    should_respond: bool = Field(..., alias="shouldRespond")
    confidence: float = Field(ge=0.0, le=1.0)
    urgency: Urgency
    topics: list[str] = Field(default_factory=list)
    reasoning: str | None = None

    def to_analysis(self) -> IntentAnalysis:
        return IntentAnalysis(
            intent=self.intent,
            should_respond=self.should_respond,
            confidence=self.confidence,
            urgency=self.urgency,
            topics=frozenset(t.strip().lower() for t in self.topics if t.strip()),
        )
