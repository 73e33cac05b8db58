"""
Usage log and cost statistics models.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .request import TaskType
from .response import GenerationResponse

EXCERPT_LENGTH = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageLogRecord(BaseModel):
    """One generation call's accounting. Append-only."""
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = Field(default=0.0, ge=0)
    latency_ms: float = 0.0
    cached: bool = False
    task_type: Optional[TaskType] = None
    status: str = "success"
    error_code: Optional[str] = None
    finish_reason: Optional[str] = None
    prompt_excerpt: str = ""
    response_excerpt: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_response(
        cls,
        response: GenerationResponse,
        prompt: str = "",
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
        task_type: Optional[TaskType] = None,
    ) -> "UsageLogRecord":
        # A cache hit did not cost anything this time around.
        cost = 0.0 if response.cached else response.cost
        return cls(
            user_id=user_id,
            project_id=project_id,
            provider=response.provider,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            total_tokens=response.total_tokens,
            cost=cost,
            latency_ms=response.latency_ms,
            cached=response.cached,
            task_type=task_type,
            finish_reason=response.finish_reason,
            prompt_excerpt=prompt[:EXCERPT_LENGTH],
            response_excerpt=response.text[:EXCERPT_LENGTH],
            metadata=dict(response.metadata),
        )


class CostBucket(BaseModel):
    """Cost and request count for one provider or model."""
    cost: float = 0.0
    requests: int = 0


class CostStats(BaseModel):
    """Aggregated usage over a time window."""
    total_cost: float = 0.0
    total_requests: int = 0
    total_tokens: int = 0
    average_cost_per_request: float = 0.0
    average_latency_ms: float = 0.0
    cache_hit_rate: float = 0.0
    by_provider: Dict[str, CostBucket] = Field(default_factory=dict)
    by_model: Dict[str, CostBucket] = Field(default_factory=dict)
    period_start: datetime
    period_end: datetime


class ThresholdStatus(BaseModel):
    """Result of comparing trailing spend with the alert threshold."""
    exceeded: bool
    current_cost: float
    threshold: float
