"""
Tests for provider adapters.

Vendor APIs are replaced with ``httpx.MockTransport`` so payload shapes,
usage parsing and error mapping can be checked without network access.
"""

import json

import httpx
import pytest

from llm_gateway.adapters import (
    PROVIDER_CLASSES,
    AnthropicAdapter,
    GeminiAdapter,
    HuggingFaceAdapter,
    LocalAdapter,
    OpenAIAdapter,
)
from llm_gateway.adapters.openai_adapter import parse_chat_stream_line
from llm_gateway.core.config import ProviderConfig
from llm_gateway.core.errors import (
    ConfigurationError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    UnsupportedOperationError,
    ValidationError,
)
from llm_gateway.models import GenerationRequest, ImageInput, ProviderCapability


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def make_adapter(cls, recorder, provider, **config):
    config.setdefault("api_key", "test-key")
    config.setdefault("retry_delay", 0.0)
    return cls(ProviderConfig(provider=provider, **config), transport=httpx.MockTransport(recorder))


def sse(*events):
    return "".join(f"data: {json.dumps(e) if not isinstance(e, str) else e}\n\n" for e in events).encode()


async def collect(stream):
    return [chunk async for chunk in stream]


class TestAdapterConstruction:
    """Test adapter setup."""

    def test_registry_knows_all_providers(self):
        assert set(PROVIDER_CLASSES) == {"gemini", "openai", "anthropic", "local", "huggingface"}

    def test_missing_api_key(self):
        """Cloud adapters refuse to start without a credential."""
        with pytest.raises(ConfigurationError):
            OpenAIAdapter(ProviderConfig(provider="openai"))

    def test_local_needs_no_key(self):
        adapter = LocalAdapter(ProviderConfig(provider="local"))
        assert adapter.name == "local"
        assert adapter.base_url == "http://localhost:11434"

    def test_supports_accepts_strings(self):
        adapter = OpenAIAdapter(ProviderConfig(provider="openai", api_key="k"))
        assert adapter.supports("vision")
        assert adapter.supports(ProviderCapability.STREAMING)
        assert not adapter.supports("telepathy")


class TestValidation:
    """Test request validation before any network call."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_kwargs", [
        {"prompt": ""},
        {"prompt": "   "},
        {"prompt": "hi", "max_tokens": 0},
        {"prompt": "hi", "temperature": 2.5},
        {"prompt": "hi", "top_p": 1.5},
        {"prompt": "hi", "frequency_penalty": -3},
        {"prompt": "hi", "presence_penalty": 2.1},
    ])
    async def test_invalid_requests_never_reach_vendor(self, request_kwargs):
        recorder = Recorder(httpx.Response(200, json={}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        with pytest.raises(ValidationError):
            await adapter.generate(GenerationRequest(**request_kwargs))
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_images_rejected_without_vision(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        adapter = make_adapter(HuggingFaceAdapter, recorder, "huggingface")
        request = GenerationRequest(prompt="describe", images=[ImageInput(data=b"img")])

        with pytest.raises(UnsupportedOperationError):
            await adapter.generate(request)
        assert recorder.requests == []


class TestOpenAIAdapter:
    """Test OpenAI adapter."""

    @pytest.mark.asyncio
    async def test_generate(self):
        recorder = Recorder(httpx.Response(200, json={
            "id": "chatcmpl-1",
            "created": 1700000000,
            "choices": [{"message": {"content": "Paris"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3},
        }))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai", api_key="sk-test")

        response = await adapter.generate(GenerationRequest(
            prompt="Capital of France?",
            system_instruction="Answer briefly",
            temperature=0.2,
            max_tokens=50,
            stop=["\n"],
        ))

        assert response.text == "Paris"
        assert response.provider == "openai"
        assert response.model == "gpt-4o-mini"
        assert response.input_tokens == 12
        assert response.output_tokens == 3
        assert response.total_tokens == 15
        assert response.cost == pytest.approx(12 / 1e6 * 0.15 + 3 / 1e6 * 0.60)
        assert response.metadata["id"] == "chatcmpl-1"
        assert response.cached is False

        assert recorder.last.url.path == "/v1/chat/completions"
        assert recorder.last.headers["authorization"] == "Bearer sk-test"
        payload = recorder.last_json()
        assert payload["messages"][0] == {"role": "system", "content": "Answer briefly"}
        assert payload["messages"][1] == {"role": "user", "content": "Capital of France?"}
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 50
        assert payload["stop"] == ["\n"]
        assert "stream" not in payload

    @pytest.mark.asyncio
    async def test_images_become_data_url_parts(self):
        recorder = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "a cat"}}]}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        await adapter.generate(GenerationRequest(
            prompt="What is this?",
            images=[ImageInput(data=b"png-bytes", mime_type="image/png")],
            model="gpt-4o",
        ))

        payload = recorder.last_json()
        assert payload["model"] == "gpt-4o"
        content = payload["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "What is this?"}
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self):
        recorder = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "12345678"}}]}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        response = await adapter.generate(GenerationRequest(prompt="abcdefghi"))

        assert response.input_tokens == 3
        assert response.output_tokens == 2

    @pytest.mark.asyncio
    async def test_stream(self):
        body = sse(
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
            "[DONE]",
        )
        recorder = Recorder(httpx.Response(200, content=body))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        chunks = await collect(adapter.generate_stream(GenerationRequest(prompt="Say hello")))

        assert [c.delta for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].text == "Hello"
        assert chunks[-1].done is True
        assert chunks[-1].finish_reason == "stop"
        assert not any(c.done for c in chunks[:-1])
        assert recorder.last_json()["stream"] is True

    def test_parse_stream_line(self):
        assert parse_chat_stream_line("data: [DONE]") == ("", "stop")
        assert parse_chat_stream_line(": keep-alive") is None
        assert parse_chat_stream_line("data: {not json") is None
        assert parse_chat_stream_line('data: {"choices": []}') is None


class TestErrorMapping:
    """Test vendor failure normalization."""

    @pytest.mark.asyncio
    async def test_authentication_error(self):
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "bad key"}}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        with pytest.raises(ProviderAuthenticationError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.provider == "openai"
        assert exc_info.value.status_code == 401
        assert "bad key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        recorder = Recorder(httpx.Response(429, headers={"retry-after": "7"}, json={"error": "slow down"}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        with pytest.raises(ProviderRateLimitError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.code == "rate_limited"

    @pytest.mark.asyncio
    async def test_server_error(self):
        recorder = Recorder(httpx.Response(500, text="internal"))
        adapter = make_adapter(AnthropicAdapter, recorder, "anthropic")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.code == "http_500"
        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "anthropic"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        adapter = make_adapter(GeminiAdapter, recorder, "gemini")

        with pytest.raises(ProviderConnectionError):
            await adapter.generate(GenerationRequest(prompt="hi"))

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        recorder = Recorder(
            httpx.Response(503, text="busy"),
            httpx.ConnectError("reset"),
            httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}),
        )
        adapter = make_adapter(OpenAIAdapter, recorder, "openai", retries=2)

        response = await adapter.generate(GenerationRequest(prompt="hi"))

        assert response.text == "ok"
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        recorder = Recorder(httpx.Response(400, json={"error": {"message": "bad request"}}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai", retries=3)

        with pytest.raises(ProviderError):
            await adapter.generate(GenerationRequest(prompt="hi"))
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        recorder = Recorder(httpx.Response(502, text="bad gateway"))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai", retries=1)

        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.status_code == 502
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_stream_error_status(self):
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "nope"}}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        with pytest.raises(ProviderAuthenticationError):
            await collect(adapter.generate_stream(GenerationRequest(prompt="hi")))


    @pytest.mark.asyncio
    async def test_non_json_body_is_a_provider_error(self):
        recorder = Recorder(httpx.Response(200, text="<html>bad gateway</html>"))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.code == "invalid_response"
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cls,provider", [
        (GeminiAdapter, "gemini"),
        (AnthropicAdapter, "anthropic"),
        (LocalAdapter, "local"),
        (HuggingFaceAdapter, "huggingface"),
    ])
    async def test_non_json_body_from_any_vendor(self, cls, provider):
        recorder = Recorder(httpx.Response(200, text="<html>proxy login</html>"))
        adapter = make_adapter(cls, recorder, provider)

        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.code == "invalid_response"


class TestGeminiAdapter:
    """Test Gemini adapter."""

    @pytest.mark.asyncio
    async def test_generate(self):
        recorder = Recorder(httpx.Response(200, json={
            "candidates": [{
                "content": {"parts": [{"text": "Bonjour"}, {"text": "!"}]},
                "finishReason": "MAX_TOKENS",
            }],
            "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 2},
        }))
        adapter = make_adapter(GeminiAdapter, recorder, "gemini", api_key="g-key")

        response = await adapter.generate(GenerationRequest(
            prompt="Say hello in French",
            system_instruction="Be terse",
            images=[ImageInput(data=b"jpg", mime_type="image/jpeg")],
            max_tokens=5,
            top_p=0.9,
        ))

        assert response.text == "Bonjour!"
        assert response.finish_reason == "length"
        assert response.input_tokens == 8
        assert response.output_tokens == 2
        assert response.model == "gemini-2.5-flash"

        assert recorder.last.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert recorder.last.headers["x-goog-api-key"] == "g-key"
        payload = recorder.last_json()
        parts = payload["contents"][0]["parts"]
        assert parts[0]["inline_data"]["mime_type"] == "image/jpeg"
        assert parts[1] == {"text": "Say hello in French"}
        assert payload["systemInstruction"] == {"parts": [{"text": "Be terse"}]}
        assert payload["generationConfig"] == {"maxOutputTokens": 5, "topP": 0.9}

    @pytest.mark.asyncio
    async def test_stream(self):
        body = sse(
            {"candidates": [{"content": {"parts": [{"text": "One "}]}}]},
            {"candidates": [{"content": {"parts": [{"text": "two"}]}, "finishReason": "STOP"}]},
        )
        recorder = Recorder(httpx.Response(200, content=body))
        adapter = make_adapter(GeminiAdapter, recorder, "gemini")

        chunks = await collect(adapter.generate_stream(GenerationRequest(prompt="count")))

        assert chunks[-1].text == "One two"
        assert chunks[-1].done is True
        assert recorder.last.url.params["alt"] == "sse"
        assert recorder.last.url.path.endswith(":streamGenerateContent")


class TestAnthropicAdapter:
    """Test Anthropic adapter."""

    @pytest.mark.asyncio
    async def test_generate(self):
        recorder = Recorder(httpx.Response(200, json={
            "id": "msg_1",
            "type": "message",
            "content": [{"type": "text", "text": "Hi there"}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 10, "output_tokens": 4},
        }))
        adapter = make_adapter(AnthropicAdapter, recorder, "anthropic", api_key="a-key")

        response = await adapter.generate(GenerationRequest(prompt="Hello", system_instruction="Be kind"))

        assert response.text == "Hi there"
        assert response.finish_reason == "stop"
        assert response.cost == pytest.approx(10 / 1e6 * 3.0 + 4 / 1e6 * 15.0)

        assert recorder.last.url.path == "/v1/messages"
        assert recorder.last.headers["x-api-key"] == "a-key"
        assert recorder.last.headers["anthropic-version"] == "2023-06-01"
        payload = recorder.last_json()
        assert payload["max_tokens"] == AnthropicAdapter.DEFAULT_MAX_TOKENS
        assert payload["system"] == "Be kind"
        assert payload["messages"][0]["content"] == [{"type": "text", "text": "Hello"}]

    @pytest.mark.asyncio
    async def test_stream(self):
        body = (
            b"event: message_start\n"
            + sse({"type": "message_start"})
            + sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}})
            + sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": " you"}})
            + sse({"type": "message_delta", "delta": {"stop_reason": "max_tokens"}})
            + sse({"type": "message_stop"})
        )
        recorder = Recorder(httpx.Response(200, content=body))
        adapter = make_adapter(AnthropicAdapter, recorder, "anthropic")

        chunks = await collect(adapter.generate_stream(GenerationRequest(prompt="Hello")))

        assert [c.delta for c in chunks] == ["Hi", " you", ""]
        assert chunks[-1].text == "Hi you"
        assert chunks[-1].finish_reason == "length"

    @pytest.mark.asyncio
    async def test_availability_checks_model_list(self):
        recorder = Recorder(httpx.Response(200, json={"data": []}))
        adapter = make_adapter(AnthropicAdapter, recorder, "anthropic")

        assert await adapter.is_available() is True
        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/v1/models"

    @pytest.mark.asyncio
    async def test_rejected_key_reports_unavailable(self):
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "invalid x-api-key"}}))
        adapter = make_adapter(AnthropicAdapter, recorder, "anthropic")

        assert await adapter.is_available() is False
        assert len(recorder.requests) == 1


class TestLocalAdapter:
    """Test self-hosted adapter."""

    def test_runtime_detection(self):
        assert LocalAdapter(ProviderConfig(provider="local")).runtime == "ollama"
        assert LocalAdapter(ProviderConfig(provider="local", base_url="http://gpu:8000")).runtime == "openai"
        assert LocalAdapter(ProviderConfig(provider="local", base_url="http://vllm.internal")).runtime == "openai"
        assert LocalAdapter(ProviderConfig(provider="local", extra={"runtime": "vllm"})).runtime == "openai"

    def test_capabilities_follow_runtime(self):
        ollama = LocalAdapter(ProviderConfig(provider="local"))
        vllm = LocalAdapter(ProviderConfig(provider="local", extra={"runtime": "openai"}))

        assert ollama.supports("vision")
        assert not vllm.supports("vision")
        assert vllm.supports("streaming")

    def test_local_inference_is_free(self):
        adapter = LocalAdapter(ProviderConfig(provider="local"))
        assert adapter.estimate_cost(GenerationRequest(prompt="x" * 4000)) == 0.0

    @pytest.mark.asyncio
    async def test_generate_ollama(self):
        recorder = Recorder(httpx.Response(200, json={
            "response": "Local answer",
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 6,
            "eval_count": 3,
        }))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        response = await adapter.generate(GenerationRequest(
            prompt="Hi",
            system_instruction="sys",
            max_tokens=20,
            images=[ImageInput(data=b"img")],
        ))

        assert response.text == "Local answer"
        assert response.input_tokens == 6
        assert response.output_tokens == 3
        assert response.cost == 0.0
        assert recorder.last.url.path == "/api/generate"
        payload = recorder.last_json()
        assert payload["stream"] is False
        assert payload["system"] == "sys"
        assert payload["options"] == {"num_predict": 20}
        assert len(payload["images"]) == 1

    @pytest.mark.asyncio
    async def test_generate_openai_compatible(self):
        recorder = Recorder(httpx.Response(200, json={
            "choices": [{"message": {"content": "vllm says hi"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 4, "completion_tokens": 3},
        }))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None, base_url="http://gpu:8000")

        response = await adapter.generate(GenerationRequest(prompt="Hi", model="mistral-7b"))

        assert response.text == "vllm says hi"
        assert response.model == "mistral-7b"
        assert recorder.last.url.path == "/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_stream_ollama(self):
        lines = [
            {"response": "A", "done": False},
            {"response": "B", "done": False},
            {"response": "", "done": True, "done_reason": "stop"},
        ]
        body = "\n".join(json.dumps(line) for line in lines).encode()
        recorder = Recorder(httpx.Response(200, content=body))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        chunks = await collect(adapter.generate_stream(GenerationRequest(prompt="letters")))

        assert [c.text for c in chunks] == ["A", "AB", "AB"]
        assert chunks[-1].done is True

    @pytest.mark.asyncio
    async def test_stream_without_final_marker(self):
        body = json.dumps({"response": "partial", "done": False}).encode()
        recorder = Recorder(httpx.Response(200, content=body))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        chunks = await collect(adapter.generate_stream(GenerationRequest(prompt="x")))

        assert chunks[-1].done is True
        assert chunks[-1].text == "partial"

    @pytest.mark.asyncio
    async def test_get_models_from_server(self):
        recorder = Recorder(httpx.Response(200, json={"models": [{"name": "mistral:7b"}, {"name": "llava:13b"}]}))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        models = await adapter.get_models()

        assert [m.id for m in models] == ["mistral:7b", "llava:13b"]
        assert all(m.input_cost_per_million == 0 for m in models)

    @pytest.mark.asyncio
    async def test_get_models_falls_back_to_default(self):
        recorder = Recorder(httpx.ConnectError("down"))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        models = await adapter.get_models()

        assert [m.id for m in models] == ["llama3:8b"]

    @pytest.mark.asyncio
    async def test_pull_model(self):
        recorder = Recorder(httpx.Response(200, json={"status": "success"}))
        adapter = make_adapter(LocalAdapter, recorder, "local", api_key=None)

        result = await adapter.pull_model("phi3:mini")

        assert result == {"status": "success"}
        assert recorder.last.url.path == "/api/pull"
        assert recorder.last_json()["name"] == "phi3:mini"

    @pytest.mark.asyncio
    async def test_pull_model_needs_ollama(self):
        adapter = LocalAdapter(ProviderConfig(provider="local", extra={"runtime": "vllm"}))

        with pytest.raises(UnsupportedOperationError):
            await adapter.pull_model("anything")


class TestHuggingFaceAdapter:
    """Test Hugging Face adapter."""

    @pytest.mark.asyncio
    async def test_prompt_echo_is_stripped(self):
        recorder = Recorder(httpx.Response(200, json=[{"generated_text": "Tell me a joke. Why did the chicken..."}]))
        adapter = make_adapter(HuggingFaceAdapter, recorder, "huggingface")

        response = await adapter.generate(GenerationRequest(prompt="Tell me a joke.", max_tokens=30))

        assert response.text == "Why did the chicken..."
        assert response.cost == 0.0
        assert recorder.last.url.path == "/models/meta-llama/Llama-3-8b-chat-hf"
        assert recorder.last_json() == {
            "inputs": "Tell me a joke.",
            "parameters": {"max_new_tokens": 30},
        }

    @pytest.mark.asyncio
    async def test_model_loading(self):
        recorder = Recorder(httpx.Response(503, json={"error": "loading"}))
        adapter = make_adapter(HuggingFaceAdapter, recorder, "huggingface")

        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(GenerationRequest(prompt="hi"))

        assert exc_info.value.code == "model_loading"

    @pytest.mark.asyncio
    async def test_streaming_is_unsupported(self):
        adapter = HuggingFaceAdapter(ProviderConfig(provider="huggingface", api_key="k"))

        with pytest.raises(UnsupportedOperationError):
            await collect(adapter.generate_stream(GenerationRequest(prompt="hi")))


class TestAvailabilityAndCost:
    """Test probes and pricing helpers."""

    @pytest.mark.asyncio
    async def test_probe_failure_reports_unavailable(self):
        recorder = Recorder(httpx.ConnectError("no route"))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        assert await adapter.is_available() is False

    @pytest.mark.asyncio
    async def test_probe_rejected_credential_reports_unavailable(self):
        recorder = Recorder(httpx.Response(401, json={"error": "bad key"}))
        adapter = make_adapter(GeminiAdapter, recorder, "gemini")

        assert await adapter.is_available() is False

    @pytest.mark.asyncio
    async def test_probe_success(self):
        recorder = Recorder(httpx.Response(200, json={"data": []}))
        adapter = make_adapter(OpenAIAdapter, recorder, "openai")

        assert await adapter.is_available() is True
        assert recorder.last.url.path == "/v1/models"

    def test_estimate_grows_with_prompt(self):
        adapter = OpenAIAdapter(ProviderConfig(provider="openai", api_key="k"))
        short = adapter.estimate_cost(GenerationRequest(prompt="hi", max_tokens=10))
        long = adapter.estimate_cost(GenerationRequest(prompt="hi" * 1000, max_tokens=10))

        assert 0 < short < long

    @pytest.mark.parametrize("provider", sorted(PROVIDER_CLASSES))
    def test_estimate_never_decreases_with_max_tokens(self, provider):
        adapter = PROVIDER_CLASSES[provider](ProviderConfig(provider=provider, api_key="k"))
        estimates = [
            adapter.estimate_cost(GenerationRequest(prompt="Summarize this", max_tokens=n))
            for n in (1, 10, 1000)
        ]

        assert estimates[0] >= 0
        assert estimates == sorted(estimates)

    def test_estimate_defaults_output_tokens(self):
        adapter = OpenAIAdapter(ProviderConfig(provider="openai", api_key="k"))
        estimate = adapter.estimate_cost(GenerationRequest(prompt="abcd"), model="gpt-4o")

        assert estimate == pytest.approx(1 / 1e6 * 2.5 + 1000 / 1e6 * 10.0)

    def test_unknown_model_costs_nothing(self):
        adapter = OpenAIAdapter(ProviderConfig(provider="openai", api_key="k"))
        assert adapter.estimate_cost(GenerationRequest(prompt="hi", model="gpt-unknown")) == 0.0

    def test_estimate_tokens(self):
        assert OpenAIAdapter.estimate_tokens("") == 0
        assert OpenAIAdapter.estimate_tokens("abcde") == 2
