"""
LLM Gateway

A single entry point for text and multimodal generation over multiple
LLM providers:
- Pluggable provider adapters (Gemini, OpenAI, Anthropic, self-hosted, Hugging Face)
- Task-aware provider selection with ordered fallbacks
- Response caching with task-specific TTLs
- Usage logging and cost reporting
"""

from .core.config import GatewaySettings, ProviderConfig, load_settings
from .core.errors import GatewayError
from .core.interface import BaseProvider
from .core.registry import ProviderRegistry
from .core.strategy import SelectionCriteria, SelectionStrategy
from .models.request import GenerationRequest, ImageInput, TaskType
from .models.response import GenerationResponse, StreamChunk
from .service import GatewayService, GenerateOptions, build_gateway

__version__ = "1.0.0"

__all__ = [
    "BaseProvider",
    "GatewayError",
    "GatewayService",
    "GatewaySettings",
    "GenerateOptions",
    "GenerationRequest",
    "GenerationResponse",
    "ImageInput",
    "ProviderConfig",
    "ProviderRegistry",
    "SelectionCriteria",
    "SelectionStrategy",
    "StreamChunk",
    "TaskType",
    "build_gateway",
    "load_settings",
]
