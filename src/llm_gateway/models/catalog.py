"""
Provider identities and model descriptors (static reference data).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Known provider identities."""
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"
    HUGGINGFACE = "huggingface"


class ProviderCapability(str, Enum):
    """Capabilities an adapter may declare."""
    CHAT = "chat"
    VISION = "vision"
    STREAMING = "streaming"
    FUNCTION_CALLING = "function_calling"
    EMBEDDINGS = "embeddings"


class ModelCapabilities(BaseModel):
    """Capability flags for a single model."""
    chat: bool = True
    vision: bool = False
    streaming: bool = False
    function_calling: bool = False


class ModelDescriptor(BaseModel):
    """A model with its pricing (USD per 1M tokens) and limits."""
    id: str
    name: str
    provider: str
    context_length: int = 4096
    input_cost_per_million: float = Field(default=0.0, ge=0)
    output_cost_per_million: float = Field(default=0.0, ge=0)
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    max_output_tokens: Optional[int] = None

    def cost_for(self, input_tokens: int, output_tokens: int) -> float:
        input_cost = (input_tokens / 1_000_000) * self.input_cost_per_million
        output_cost = (output_tokens / 1_000_000) * self.output_cost_per_million
        return input_cost + output_cost
