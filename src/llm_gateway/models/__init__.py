"""
LLM gateway data models.
"""

from .request import GenerationRequest, ImageInput, TaskType
from .response import GenerationResponse, StreamChunk, FinishReason
from .catalog import Provider, ProviderCapability, ModelDescriptor, ModelCapabilities
from .usage import UsageLogRecord, CostStats, CostBucket, ThresholdStatus

__all__ = [
    "GenerationRequest",
    "ImageInput",
    "TaskType",
    "GenerationResponse",
    "StreamChunk",
    "FinishReason",
    "Provider",
    "ProviderCapability",
    "ModelDescriptor",
    "ModelCapabilities",
    "UsageLogRecord",
    "CostStats",
    "CostBucket",
    "ThresholdStatus",
]
