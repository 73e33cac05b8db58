"""
Direct OpenAI API adapter.

The chat-completions payload and stream parsing here are shared with
OpenAI-compatible self-hosted runtimes (vLLM and similar).
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..core.interface import BaseProvider
from ..models.catalog import ModelCapabilities, ModelDescriptor, Provider, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse

logger = logging.getLogger(__name__)


def build_chat_messages(request: GenerationRequest) -> List[Dict[str, Any]]:
    """System message plus one user message, images as data-URI parts."""
    messages: List[Dict[str, Any]] = []

    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})

    if request.images:
        content: Any = [{"type": "text", "text": request.prompt}]
        for image in request.images:
            content.append({"type": "image_url", "image_url": {"url": image.to_data_url()}})
    else:
        content = request.prompt

    messages.append({"role": "user", "content": content})
    return messages


def build_chat_payload(request: GenerationRequest, model: str, stream: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": build_chat_messages(request),
    }

    if request.temperature is not None:
        payload["temperature"] = request.temperature
    if request.max_tokens is not None:
        payload["max_tokens"] = request.max_tokens
    if request.top_p is not None:
        payload["top_p"] = request.top_p
    if request.frequency_penalty is not None:
        payload["frequency_penalty"] = request.frequency_penalty
    if request.presence_penalty is not None:
        payload["presence_penalty"] = request.presence_penalty
    if request.stop:
        payload["stop"] = request.stop
    if stream:
        payload["stream"] = True

    return payload


def parse_chat_stream_line(line: str) -> Optional[Tuple[str, Optional[str]]]:
    """Parse one ``data:`` SSE line. Returns None for lines carrying nothing."""
    if not line.startswith("data: "):
        return None

    data = line[6:].strip()
    if data == "[DONE]":
        return "", "stop"

    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed stream event: {data[:100]}")
        return None

    choices = event.get("choices") or []
    if not choices:
        return None

    delta = (choices[0].get("delta") or {}).get("content") or ""
    finish_reason = choices[0].get("finish_reason")
    if not delta and not finish_reason:
        return None
    return delta, finish_reason


def _openai_model(model_id: str, name: str, input_cost: float, output_cost: float,
                  context_length: int, vision: bool, max_output_tokens: int) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        provider=Provider.OPENAI.value,
        context_length=context_length,
        input_cost_per_million=input_cost,
        output_cost_per_million=output_cost,
        capabilities=ModelCapabilities(chat=True, vision=vision, streaming=True, function_calling=True),
        max_output_tokens=max_output_tokens,
    )


class OpenAIAdapter(BaseProvider):
    """
    Direct OpenAI API adapter.

    Connects directly to OpenAI's chat completions API.
    """

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"
    CAPABILITIES = {
        ProviderCapability.CHAT,
        ProviderCapability.VISION,
        ProviderCapability.STREAMING,
        ProviderCapability.FUNCTION_CALLING,
        ProviderCapability.EMBEDDINGS,
    }
    MODELS = [
        _openai_model("gpt-4o", "GPT-4o", 2.50, 10.00, 128000, True, 16384),
        _openai_model("gpt-4o-mini", "GPT-4o Mini", 0.15, 0.60, 128000, True, 16384),
        _openai_model("gpt-4-turbo", "GPT-4 Turbo", 10.00, 30.00, 128000, True, 4096),
        _openai_model("gpt-3.5-turbo", "GPT-3.5 Turbo", 0.50, 1.50, 16385, False, 4096),
    ]

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }

    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        response = await self._request(
            "POST",
            "/chat/completions",
            json=build_chat_payload(request, model),
        )
        data = self._json(response)

        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        usage = data.get("usage") or {}

        return self._build_response(
            request,
            text=message.get("content") or "",
            model=model,
            started=started,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            finish_reason=choices[0].get("finish_reason"),
            metadata={"id": data.get("id"), "created": data.get("created")},
        )

    async def _generate_stream(
        self,
        request: GenerationRequest,
        model: str,
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        async for line in self._stream_lines(
            "/chat/completions",
            build_chat_payload(request, model, stream=True),
        ):
            parsed = parse_chat_stream_line(line)
            if parsed is not None:
                yield parsed

    async def _probe(self) -> bool:
        response = await self._request("GET", "/models", timeout=self.PROBE_TIMEOUT, retry=False)
        return response.status_code == 200
