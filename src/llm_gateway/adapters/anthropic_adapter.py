"""
Direct Anthropic API adapter.

Provides direct access to Anthropic's Claude Messages API.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..core.interface import BaseProvider
from ..models.catalog import ModelCapabilities, ModelDescriptor, Provider, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse

logger = logging.getLogger(__name__)

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
}


def _claude_model(model_id: str, name: str, input_cost: float, output_cost: float,
                  max_output_tokens: int, function_calling: bool = True) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        provider=Provider.ANTHROPIC.value,
        context_length=200000,
        input_cost_per_million=input_cost,
        output_cost_per_million=output_cost,
        capabilities=ModelCapabilities(chat=True, vision=True, streaming=True, function_calling=function_calling),
        max_output_tokens=max_output_tokens,
    )


class AnthropicAdapter(BaseProvider):
    """
    Direct Anthropic API adapter.

    The Messages API requires ``max_tokens``; requests without one get
    ``DEFAULT_MAX_TOKENS``.
    """

    DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
    DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096
    CAPABILITIES = {
        ProviderCapability.CHAT,
        ProviderCapability.VISION,
        ProviderCapability.STREAMING,
        ProviderCapability.FUNCTION_CALLING,
    }
    MODELS = [
        _claude_model("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 3.00, 15.00, 8192),
        _claude_model("claude-3-opus-20240229", "Claude 3 Opus", 15.00, 75.00, 4096),
        _claude_model("claude-3-haiku-20240307", "Claude 3 Haiku", 0.25, 1.25, 4096, function_calling=False),
    ]

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._config.api_key,
            "anthropic-version": self.ANTHROPIC_VERSION,
        }

    def _build_payload(self, request: GenerationRequest, model: str, stream: bool = False) -> Dict[str, Any]:
        content: List[Dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.mime_type,
                    "data": image.to_base64(),
                },
            }
            for image in request.images
        ]
        content.append({"type": "text", "text": request.prompt})

        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": content}],
        }

        if request.system_instruction:
            payload["system"] = request.system_instruction
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.stop:
            payload["stop_sequences"] = request.stop
        if stream:
            payload["stream"] = True

        return payload

    @staticmethod
    def _normalize_stop_reason(reason: Optional[str]) -> Optional[str]:
        if reason is None:
            return None
        return STOP_REASONS.get(reason, reason)

    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        response = await self._request(
            "POST",
            "/messages",
            json=self._build_payload(request, model),
        )
        data = self._json(response)

        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}

        return self._build_response(
            request,
            text=text,
            model=model,
            started=started,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            finish_reason=self._normalize_stop_reason(data.get("stop_reason")),
            metadata={"id": data.get("id"), "type": data.get("type")},
        )

    async def _generate_stream(
        self,
        request: GenerationRequest,
        model: str,
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        stop_reason = None

        async for line in self._stream_lines(
            "/messages",
            self._build_payload(request, model, stream=True),
        ):
            if not line.startswith("data: "):
                continue
            try:
                event = json.loads(line[6:])
            except json.JSONDecodeError:
                continue

            event_type = event.get("type")

            if event_type == "content_block_delta":
                delta = event.get("delta") or {}
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield delta["text"], None

            elif event_type == "message_delta":
                stop_reason = (event.get("delta") or {}).get("stop_reason") or stop_reason

            elif event_type == "message_stop":
                yield "", self._normalize_stop_reason(stop_reason) or "stop"

    async def _probe(self) -> bool:
        response = await self._request("GET", "/models", timeout=self.PROBE_TIMEOUT, retry=False)
        return response.status_code == 200
