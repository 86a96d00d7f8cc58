"""
Notification rule models.

Rules are operator-defined (condition + timing + recipients) and drive
structured business alerts such as invoice-due reminders. They are
long-lived configuration; the engine only reads them.
"""
import re
from enum import StrEnum
from typing import List, Optional, Set, Union
from pydantic import BaseModel, Field, field_validator

from src.models.base import MongoBaseModel


class ConditionOperator(StrEnum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"


class NotificationCondition(BaseModel):
    field: str
    # Kept as a plain string: stored rules may carry operators we do not
    # know about, and those must evaluate false rather than fail to load.
    operator: str
    value: Union[float, int, str, bool]


class TimingType(StrEnum):
    IMMEDIATE = "immediate"
    SCHEDULE = "schedule"
    DELAY = "delay"


_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class NotificationTiming(BaseModel):
    type: TimingType
    # 0-6, Sunday = 0 (same convention the settings UI stores)
    schedule_days: Optional[Set[int]] = None
    schedule_time: Optional[str] = None
    delay_minutes: Optional[int] = None

    @field_validator("schedule_days")
    @classmethod
    def check_days(cls, days: Optional[Set[int]]) -> Optional[Set[int]]:
        if days is not None and any(d < 0 or d > 6 for d in days):
            raise ValueError("schedule_days must be in 0..6 (Sunday = 0)")
        return days

    @field_validator("schedule_time")
    @classmethod
    def check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _HHMM.match(value):
            raise ValueError("schedule_time must be HH:MM")
        return value


class RecipientType(StrEnum):
    USER = "user"
    COMPANY_CONTACTS = "company_contacts"
    CUSTOM = "custom"


class NotificationRule(MongoBaseModel):
    rule_id: str
    name: str = ""
    conditions: Optional[List[NotificationCondition]] = None
    timing: Optional[NotificationTiming] = None
    recipient_type: RecipientType
    custom_recipients: List[str] = Field(default_factory=list)
    template_id: str
    is_active: bool = True


class NotificationTemplate(MongoBaseModel):
    template_id: str
    name: str
    body: str
    language: str = "it"
    header: Optional[str] = None
    footer: Optional[str] = None


class TimingDecision(StrEnum):
    SEND = "send"
    WAIT = "wait"
    NOT_SUPPORTED = "not_supported"


class RuleDispatchResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    not_supported: bool = False
    recipients_attempted: int = 0
    recipients_succeeded: int = 0
