"""
Cache key derivation and TTL policy.
"""

import hashlib
import json
from typing import Dict, Optional

from ..models.request import GenerationRequest, ImageInput, TaskType

DEFAULT_KEY_PREFIX = "llm:"
DEFAULT_TTL = 3600
IMAGE_FINGERPRINT_BYTES = 64

# seconds
TASK_TTLS: Dict[TaskType, int] = {
    TaskType.EMBEDDING: 86400,
    TaskType.CHAT: 1800,
    TaskType.ANALYSIS: 3600,
    TaskType.VISION: 3600,
    TaskType.CODE: 3600,
}


def ttl_for(task_type: Optional[TaskType], default: int = DEFAULT_TTL) -> int:
    """TTL for a task type; ``default`` for code and untyped calls."""
    if task_type is None or task_type == TaskType.CODE:
        return default
    return TASK_TTLS.get(task_type, default)


def image_fingerprint(image: ImageInput, prefix_bytes: int = IMAGE_FINGERPRINT_BYTES) -> str:
    """MIME type, byte length and a hash of the leading bytes."""
    digest = hashlib.sha256(image.data[:prefix_bytes]).hexdigest()[:16]
    return f"{image.mime_type}:{len(image.data)}:{digest}"


def build_cache_key(
    request: GenerationRequest,
    model: Optional[str] = None,
    prefix: str = DEFAULT_KEY_PREFIX,
    image_fingerprint_bytes: int = IMAGE_FINGERPRINT_BYTES,
) -> str:
    """
    Compute a deterministic cache key.

    Everything that changes the generated output takes part in the key;
    request metadata does not.

    Args:
        request: Generation request
        model: Resolved model id. Falls back to the request's model, then "default".
        prefix: Key namespace
        image_fingerprint_bytes: How many leading image bytes to hash

    Returns:
        Prefixed SHA-256 hex digest
    """
    content = json.dumps({
        "prompt": request.prompt,
        "model": model or request.model or "default",
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "top_p": request.top_p,
        "frequency_penalty": request.frequency_penalty,
        "presence_penalty": request.presence_penalty,
        "stop": request.stop,
        "system_instruction": request.system_instruction,
        "images": [image_fingerprint(img, image_fingerprint_bytes) for img in request.images],
    }, sort_keys=True)
    return f"{prefix}{hashlib.sha256(content.encode()).hexdigest()}"
