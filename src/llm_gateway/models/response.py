"""
Unified response models for the LLM gateway.
"""

from typing import Optional, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FinishReason(str, Enum):
    """Normalized finish reasons. Vendor-specific values pass through as strings."""
    STOP = "stop"
    LENGTH = "length"
    ERROR = "error"


class GenerationResponse(BaseModel):
    """
    Unified generation response.

    Produced once per call. Use ``model_copy(update=...)`` to derive a
    variant (for example the cached copy) instead of mutating.
    """
    model_config = ConfigDict(frozen=True)

    text: str = ""
    model: str = ""
    provider: str = ""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    latency_ms: float = Field(default=0.0, ge=0)
    cached: bool = False
    finish_reason: Optional[str] = FinishReason.STOP.value
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _derive_total(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["total_tokens"] = int(data.get("input_tokens") or 0) + int(data.get("output_tokens") or 0)
        return data


class StreamChunk(BaseModel):
    """One incremental segment of a streaming generation."""
    text: str = Field(default="", description="Accumulated text so far")
    delta: str = Field(default="", description="Text added by this chunk")
    done: bool = False
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
