"""
Provider adapters for the LLM gateway.
"""

from ..models.catalog import Provider
from .gemini_adapter import GeminiAdapter
from .openai_adapter import OpenAIAdapter
from .anthropic_adapter import AnthropicAdapter
from .local_adapter import LocalAdapter
from .huggingface_adapter import HuggingFaceAdapter

PROVIDER_CLASSES = {
    Provider.GEMINI.value: GeminiAdapter,
    Provider.OPENAI.value: OpenAIAdapter,
    Provider.ANTHROPIC.value: AnthropicAdapter,
    Provider.LOCAL.value: LocalAdapter,
    Provider.HUGGINGFACE.value: HuggingFaceAdapter,
}

__all__ = [
    "GeminiAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "LocalAdapter",
    "HuggingFaceAdapter",
    "PROVIDER_CLASSES",
]
