from typing import Any, Dict, List
from pydantic import BaseModel, Field


class BusinessContext(BaseModel):
    """
    Snapshot of the customer's financial situation embedded in AI prompts.
    An empty context is valid: it just means the lookup found nothing or failed.
    """
    recent_movements: List[Dict[str, Any]] = Field(default_factory=list)
    total_income: float = 0.0
    total_expenses: float = 0.0
    company_count: int = 0
    customer_history: int = 0

    @classmethod
    def empty(cls) -> "BusinessContext":
        return cls()

    def to_prompt(self) -> str:
        return self.model_dump_json(indent=2)
