"""
Hugging Face Inference API adapter.
"""

import json
import logging
from typing import Any, Dict

import httpx

from ..core.errors import ProviderError
from ..core.interface import BaseProvider
from ..models.catalog import ModelCapabilities, ModelDescriptor, Provider, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse

logger = logging.getLogger(__name__)


def _hf_model(model_id: str, name: str, context_length: int, max_output_tokens: int) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=name,
        provider=Provider.HUGGINGFACE.value,
        context_length=context_length,
        capabilities=ModelCapabilities(chat=True, vision=False, streaming=False, function_calling=False),
        max_output_tokens=max_output_tokens,
    )


class HuggingFaceAdapter(BaseProvider):
    """
    Hugging Face Inference API adapter.

    Text generation only: no images, no streaming. Listed models are on the
    free tier, so cost is always 0.
    """

    DEFAULT_BASE_URL = "https://api-inference.huggingface.co"
    DEFAULT_MODEL = "meta-llama/Llama-3-8b-chat-hf"
    CAPABILITIES = {ProviderCapability.CHAT}
    MODELS = [
        _hf_model("meta-llama/Llama-3-8b-chat-hf", "Llama 3 8B Chat", 8192, 4096),
        _hf_model("mistralai/Mistral-7B-Instruct-v0.2", "Mistral 7B Instruct", 8192, 4096),
        _hf_model("google/flan-t5-large", "FLAN-T5 Large", 512, 512),
    ]

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }

    def estimate_cost(self, request: GenerationRequest, model=None) -> float:
        return 0.0

    def _check_response_errors(self, response: httpx.Response) -> None:
        if response.status_code == 503:
            raise ProviderError(
                "Hugging Face model is loading, please try again in a few moments",
                provider=self.name,
                code="model_loading",
                status_code=503,
            )
        super()._check_response_errors(response)

    def _build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        parameters: Dict[str, Any] = {}
        if request.temperature is not None:
            parameters["temperature"] = request.temperature
        if request.max_tokens is not None:
            parameters["max_new_tokens"] = request.max_tokens
        if request.top_p is not None:
            parameters["top_p"] = request.top_p
        if request.stop:
            parameters["stop"] = request.stop

        return {"inputs": request.prompt_text(), "parameters": parameters}

    @staticmethod
    def _extract_text(data: Any) -> str:
        if isinstance(data, list):
            first = data[0] if data else {}
            return first.get("generated_text", "") if isinstance(first, dict) else str(first)
        if isinstance(data, dict) and "generated_text" in data:
            return data["generated_text"]
        return json.dumps(data)

    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        response = await self._request(
            "POST",
            f"/models/{model}",
            json=self._build_payload(request),
        )

        full_prompt = request.prompt_text()
        text = self._extract_text(self._json(response))
        # text-generation endpoints echo the prompt
        if text.startswith(full_prompt):
            text = text[len(full_prompt):].strip()

        return self._build_response(
            request,
            text=text,
            model=model,
            started=started,
            metadata={"model": model},
        )

    async def _probe(self) -> bool:
        # Any HTTP answer means the API is reachable.
        client = await self._get_client()
        await client.get("/models", timeout=self.PROBE_TIMEOUT)
        return True
