"""
Google Gemini adapter.

Talks to the Generative Language REST API (``generateContent`` and
``streamGenerateContent``) directly.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from ..core.interface import BaseProvider
from ..models.catalog import ModelCapabilities, ModelDescriptor, Provider, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
}


def _gemini_model(model_id: str, name: str, input_cost: float, output_cost: float,
                  context_length: int, vision: bool = True) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        provider=Provider.GEMINI.value,
        context_length=context_length,
        input_cost_per_million=input_cost,
        output_cost_per_million=output_cost,
        capabilities=ModelCapabilities(chat=True, vision=vision, streaming=True, function_calling=True),
        max_output_tokens=8192,
    )


class GeminiAdapter(BaseProvider):
    """
    Gemini adapter.

    Images are sent as ``inline_data`` parts ahead of the prompt text.
    """

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-2.5-flash"
    CAPABILITIES = {
        ProviderCapability.CHAT,
        ProviderCapability.VISION,
        ProviderCapability.STREAMING,
        ProviderCapability.FUNCTION_CALLING,
    }
    MODELS = [
        _gemini_model("gemini-2.5-flash", "Gemini 2.5 Flash", 0.075, 0.30, 1000000),
        _gemini_model("gemini-1.5-flash", "Gemini 1.5 Flash", 0.075, 0.30, 1000000),
        _gemini_model("gemini-pro", "Gemini Pro", 0.50, 1.50, 32768, vision=False),
    ]

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self._config.api_key,
        }

    def _build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        parts = [
            {"inline_data": {"mime_type": image.mime_type, "data": image.to_base64()}}
            for image in request.images
        ]
        parts.append({"text": request.prompt})

        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}

        if request.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}

        generation_config: Dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if request.top_p is not None:
            generation_config["topP"] = request.top_p
        if request.frequency_penalty is not None:
            generation_config["frequencyPenalty"] = request.frequency_penalty
        if request.presence_penalty is not None:
            generation_config["presencePenalty"] = request.presence_penalty
        if request.stop:
            generation_config["stopSequences"] = request.stop
        if generation_config:
            payload["generationConfig"] = generation_config

        return payload

    @staticmethod
    def _candidate_text(data: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return "", None

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)

        finish_reason = candidate.get("finishReason")
        if finish_reason:
            finish_reason = FINISH_REASONS.get(finish_reason, finish_reason.lower())
        return text, finish_reason

    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        response = await self._request(
            "POST",
            f"/models/{model}:generateContent",
            json=self._build_payload(request),
        )
        data = self._json(response)

        text, finish_reason = self._candidate_text(data)
        usage = data.get("usageMetadata") or {}

        return self._build_response(
            request,
            text=text,
            model=model,
            started=started,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
            finish_reason=finish_reason,
            metadata={
                "response_id": data.get("responseId"),
                "candidates": len(data.get("candidates") or []),
            },
        )

    async def _generate_stream(
        self,
        request: GenerationRequest,
        model: str,
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        async for line in self._stream_lines(
            f"/models/{model}:streamGenerateContent",
            self._build_payload(request),
            params={"alt": "sse"},
        ):
            if not line.startswith("data: "):
                continue
            try:
                event = json.loads(line[6:])
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed Gemini stream event: {line[:100]}")
                continue

            text, finish_reason = self._candidate_text(event)
            if text or finish_reason:
                yield text, finish_reason

    async def _probe(self) -> bool:
        response = await self._request("GET", "/models", timeout=self.PROBE_TIMEOUT, retry=False)
        return response.status_code == 200
