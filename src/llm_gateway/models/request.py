"""
Unified request models for the LLM gateway.
"""

import base64
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


class TaskType(str, Enum):
    """Purpose of a call. Drives default routing and cache TTL."""
    CHAT = "chat"
    ANALYSIS = "analysis"
    EMBEDDING = "embedding"
    VISION = "vision"
    CODE = "code"


class ImageInput(BaseModel):
    """Binary image payload attached to a request."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_base64(cls, data: str, mime_type: str = "image/png") -> "ImageInput":
        return cls(data=base64.b64decode(data), mime_type=mime_type)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class GenerationRequest(BaseModel):
    """
    Unified generation request.

    Sampling parameters are only range-checked by the adapters so the
    gateway can reject bad input with its own ValidationError before
    any network call.
    """
    model_config = ConfigDict(frozen=True)

    prompt: str = Field(..., description="Prompt text")
    system_instruction: Optional[str] = None
    images: List[ImageInput] = Field(default_factory=list)

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None

    model: Optional[str] = Field(default=None, description="Explicit model id")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def has_images(self) -> bool:
        return bool(self.images)

    def prompt_text(self) -> str:
        """System instruction and prompt, as used for token estimation."""
        if self.system_instruction:
            return f"{self.system_instruction}\n\n{self.prompt}"
        return self.prompt
