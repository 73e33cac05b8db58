"""
Self-hosted model adapter.

Supports two runtimes:
- Ollama (``/api/generate``), the default
- OpenAI-compatible servers such as vLLM (``/v1/chat/completions``)

Local inference has no API cost and needs no API key.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from ..core.config import ProviderConfig
from ..core.errors import UnsupportedOperationError
from ..core.interface import BaseProvider
from ..models.catalog import ModelCapabilities, ModelDescriptor, Provider, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse
from .openai_adapter import build_chat_payload, parse_chat_stream_line

logger = logging.getLogger(__name__)

RUNTIME_OLLAMA = "ollama"
RUNTIME_OPENAI = "openai"


def _local_model(model_id: str, context_length: int = 4096) -> ModelDescriptor:
    return ModelDescriptor(
        id=model_id,
        name=model_id,
        provider=Provider.LOCAL.value,
        context_length=context_length,
        capabilities=ModelCapabilities(chat=True, vision=False, streaming=True, function_calling=False),
        max_output_tokens=4096,
    )


class LocalAdapter(BaseProvider):
    """
    Local LLM adapter for Ollama or vLLM.

    The runtime comes from ``extra["runtime"]`` ("ollama", or "openai"/"vllm"
    for OpenAI-compatible servers). Without it, URLs that mention vllm or
    port 8000 are treated as OpenAI-compatible.
    """

    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_MODEL = "llama3:8b"
    REQUIRES_API_KEY = False
    MODELS = [_local_model("llama3:8b", context_length=8192)]

    def __init__(self, config: ProviderConfig, transport=None):
        super().__init__(config, transport=transport)
        self._runtime = self._detect_runtime(config)

    def _detect_runtime(self, config: ProviderConfig) -> str:
        runtime = (config.extra.get("runtime") or "").lower()
        if runtime in ("openai", "vllm"):
            return RUNTIME_OPENAI
        if runtime == RUNTIME_OLLAMA:
            return RUNTIME_OLLAMA
        if "vllm" in self._base_url or ":8000" in self._base_url:
            return RUNTIME_OPENAI
        return RUNTIME_OLLAMA

    @property
    def runtime(self) -> str:
        return self._runtime

    @property
    def capabilities(self) -> Set[ProviderCapability]:
        capabilities = {ProviderCapability.CHAT, ProviderCapability.STREAMING}
        if self._runtime == RUNTIME_OLLAMA:
            # multimodal models such as llava
            capabilities.add(ProviderCapability.VISION)
            capabilities.add(ProviderCapability.EMBEDDINGS)
        return capabilities

    def estimate_cost(self, request: GenerationRequest, model: Optional[str] = None) -> float:
        return 0.0

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        return 0.0

    def _build_ollama_payload(self, request: GenerationRequest, model: str, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "stream": stream,
        }

        if request.system_instruction:
            payload["system"] = request.system_instruction
        if request.images:
            payload["images"] = [image.to_base64() for image in request.images]

        options: Dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        if request.top_p is not None:
            options["top_p"] = request.top_p
        if request.frequency_penalty is not None:
            options["frequency_penalty"] = request.frequency_penalty
        if request.presence_penalty is not None:
            options["presence_penalty"] = request.presence_penalty
        if request.stop:
            options["stop"] = request.stop
        if options:
            payload["options"] = options

        return payload

    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        if self._runtime == RUNTIME_OPENAI:
            return await self._generate_openai(request, model, started)

        response = await self._request(
            "POST",
            "/api/generate",
            json=self._build_ollama_payload(request, model, stream=False),
        )
        data = self._json(response)

        return self._build_response(
            request,
            text=data.get("response") or "",
            model=model,
            started=started,
            input_tokens=data.get("prompt_eval_count"),
            output_tokens=data.get("eval_count"),
            finish_reason=data.get("done_reason"),
            metadata={
                "total_duration": data.get("total_duration"),
                "load_duration": data.get("load_duration"),
                "eval_duration": data.get("eval_duration"),
            },
        )

    async def _generate_openai(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        response = await self._request(
            "POST",
            "/v1/chat/completions",
            json=build_chat_payload(request, model),
        )
        data = self._json(response)

        choices = data.get("choices") or [{}]
        usage = data.get("usage") or {}

        return self._build_response(
            request,
            text=(choices[0].get("message") or {}).get("content") or "",
            model=model,
            started=started,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            finish_reason=choices[0].get("finish_reason"),
            metadata={"id": data.get("id")},
        )

    async def _generate_stream(
        self,
        request: GenerationRequest,
        model: str,
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        if self._runtime == RUNTIME_OPENAI:
            async for line in self._stream_lines(
                "/v1/chat/completions",
                build_chat_payload(request, model, stream=True),
            ):
                parsed = parse_chat_stream_line(line)
                if parsed is not None:
                    yield parsed
            return

        async for line in self._stream_lines(
            "/api/generate",
            self._build_ollama_payload(request, model, stream=True),
        ):
            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                continue

            if chunk.get("done"):
                yield chunk.get("response") or "", chunk.get("done_reason") or "stop"
                return
            if chunk.get("response"):
                yield chunk["response"], None

    async def get_models(self) -> List[ModelDescriptor]:
        """Installed Ollama models, or the default model when listing fails."""
        if self._runtime != RUNTIME_OLLAMA:
            return [m.model_copy() for m in self.MODELS]

        try:
            response = await self._request("GET", "/api/tags", retry=False)
            data = self._json(response)
        except Exception as e:
            logger.warning(f"Failed to list local models: {e}")
            return [m.model_copy() for m in self.MODELS]

        models = [
            _local_model(
                m["name"],
                context_length=(m.get("details") or {}).get("context_length") or 4096,
            )
            for m in data.get("models", [])
            if m.get("name")
        ]
        return models or [m.model_copy() for m in self.MODELS]

    async def pull_model(self, model: str) -> Dict[str, Any]:
        """
        Download a model into the Ollama server.

        Args:
            model: Model name to pull (e.g., "llama3:8b")

        Returns:
            Final status reported by the server
        """
        if self._runtime != RUNTIME_OLLAMA:
            raise UnsupportedOperationError(
                "Pulling models is only available for Ollama",
                provider=self.name,
            )

        response = await self._request(
            "POST",
            "/api/pull",
            json={"name": model, "stream": False},
            timeout=max(self._timeout, 300.0),
        )
        logger.info(f"Pulled local model: {model}")
        return self._json(response)

    async def _probe(self) -> bool:
        path = "/api/tags" if self._runtime == RUNTIME_OLLAMA else "/health"
        response = await self._request("GET", path, timeout=self.PROBE_TIMEOUT, retry=False)
        return response.status_code == 200
