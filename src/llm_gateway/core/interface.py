"""
Provider adapter interface.

Defines the contract every provider adapter implements, plus the shared
behaviour they all need: request validation, token estimation, pricing,
HTTP client lifecycle with bounded retries, and normalization of vendor
failures into ``ProviderError``.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, ClassVar, Dict, List, Optional, Set, Tuple

import httpx

from ..models.catalog import ModelDescriptor, ProviderCapability
from ..models.request import GenerationRequest
from ..models.response import GenerationResponse, StreamChunk
from .config import ProviderConfig
from .errors import (
    ConfigurationError,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    UnsupportedOperationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_OUTPUT_TOKENS = 1000


class BaseProvider(ABC):
    """
    Abstract base class for provider adapters.

    Subclasses translate a ``GenerationRequest`` into their vendor's native
    payload and parse the native response back. The registry and the gateway
    only ever talk to this interface.
    """

    DEFAULT_BASE_URL: ClassVar[str] = ""
    DEFAULT_MODEL: ClassVar[str] = ""
    MODELS: ClassVar[List[ModelDescriptor]] = []
    CAPABILITIES: ClassVar[Set[ProviderCapability]] = {ProviderCapability.CHAT}
    REQUIRES_API_KEY: ClassVar[bool] = True
    PROBE_TIMEOUT: ClassVar[float] = 5.0
    RETRYABLE_STATUS: ClassVar[Set[int]] = {429, 500, 502, 503, 504}

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Provider configuration
            transport: Optional httpx transport (used by tests)
        """
        if self.REQUIRES_API_KEY and not config.api_key:
            raise ConfigurationError(
                f"API key required for provider {config.provider}",
                provider=config.provider,
            )

        self._config = config
        self._base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._default_model = config.default_model or self.DEFAULT_MODEL
        self._timeout = config.timeout
        self._retries = max(0, config.retries)
        self._retry_delay = max(0.0, config.retry_delay)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def name(self) -> str:
        """Provider identity this adapter is registered under."""
        return self._config.provider

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def default_model(self) -> str:
        return self._default_model

    @property
    def capabilities(self) -> Set[ProviderCapability]:
        return set(self.CAPABILITIES)

    def supports(self, capability) -> bool:
        """Check if the adapter declares a capability (enum or its string value)."""
        try:
            capability = ProviderCapability(capability)
        except ValueError:
            return False
        return capability in self.capabilities

    # HTTP client lifecycle

    def _default_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers(),
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.debug(f"Connected {self.name} adapter to {self._base_url}")

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"Disconnected {self.name} adapter")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.connect()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Send a request, retrying transport failures, 429 and 5xx responses."""
        client = await self._get_client()
        attempts = 1 + (self._retries if retry else 0)
        last_error: Optional[ProviderError] = None

        for attempt in range(attempts):
            try:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    timeout=timeout if timeout is not None else self._timeout,
                )
            except httpx.TimeoutException as e:
                last_error = ProviderConnectionError(f"{self.name} request timed out: {e}", provider=self.name)
            except httpx.RequestError as e:
                last_error = ProviderConnectionError(f"{self.name} request failed: {e}", provider=self.name)
            else:
                if response.status_code not in self.RETRYABLE_STATUS or attempt == attempts - 1:
                    self._check_response_errors(response)
                    return response
                last_error = ProviderError(
                    f"{self.name} returned {response.status_code}",
                    provider=self.name,
                    status_code=response.status_code,
                )

            if attempt < attempts - 1:
                logger.warning(
                    f"{self.name} attempt {attempt + 1}/{attempts} failed: {last_error.message}, "
                    f"retrying in {self._retry_delay}s"
                )
                await asyncio.sleep(self._retry_delay)

        raise last_error

    async def _stream_lines(
        self,
        path: str,
        payload: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[str]:
        """POST and yield non-empty response lines as they arrive."""
        client = await self._get_client()

        try:
            async with client.stream("POST", path, json=payload, params=params) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._check_response_errors(response)

                async for line in response.aiter_lines():
                    if line:
                        yield line

        except httpx.RequestError as e:
            raise ProviderConnectionError(f"{self.name} stream failed: {e}", provider=self.name)

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:500]

        if isinstance(data, dict):
            error = data.get("error", data)
            if isinstance(error, dict):
                return str(error.get("message") or error)
            return str(error)
        return str(data)

    def _check_response_errors(self, response: httpx.Response) -> None:
        """Map vendor failure responses onto the ProviderError family."""
        if response.status_code < 400:
            return

        detail = self._error_detail(response)

        if response.status_code in (401, 403):
            raise ProviderAuthenticationError(
                f"{self.name} rejected the credential: {detail}",
                provider=self.name,
                status_code=response.status_code,
            )

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            try:
                retry_after = float(retry_after) if retry_after else None
            except ValueError:
                retry_after = None
            raise ProviderRateLimitError(
                f"{self.name} rate limit exceeded: {detail}",
                provider=self.name,
                retry_after=retry_after,
            )

        raise ProviderError(
            f"{self.name} request failed: {response.status_code} - {detail}",
            provider=self.name,
            code=f"http_{response.status_code}",
            status_code=response.status_code,
        )

    def _json(self, response: httpx.Response) -> Any:
        """Decode a successful response body."""
        try:
            return response.json()
        except ValueError:
            raise ProviderError(
                f"{self.name} returned a non-JSON response: {response.text[:200]}",
                provider=self.name,
                code="invalid_response",
                status_code=response.status_code,
            )

    # Shared request handling

    def validate_request(self, request: GenerationRequest) -> None:
        """Reject bad input before any network call."""
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("Prompt cannot be empty", provider=self.name)

        if request.max_tokens is not None and request.max_tokens < 1:
            raise ValidationError("max_tokens must be greater than 0", provider=self.name)

        if request.temperature is not None and not 0 <= request.temperature <= 2:
            raise ValidationError("temperature must be between 0 and 2", provider=self.name)

        if request.top_p is not None and not 0 <= request.top_p <= 1:
            raise ValidationError("top_p must be between 0 and 1", provider=self.name)

        for label, value in (
            ("frequency_penalty", request.frequency_penalty),
            ("presence_penalty", request.presence_penalty),
        ):
            if value is not None and not -2 <= value <= 2:
                raise ValidationError(f"{label} must be between -2 and 2", provider=self.name)

        if request.images and not self.supports(ProviderCapability.VISION):
            raise UnsupportedOperationError(
                f"Provider {self.name} does not accept images",
                provider=self.name,
            )

    @staticmethod
    def estimate_tokens(text: Optional[str]) -> int:
        """Approximate token count (~4 characters per token)."""
        if not text:
            return 0
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def resolve_model(self, request: GenerationRequest) -> str:
        return request.model or self._default_model

    def find_model(self, model_id: str) -> Optional[ModelDescriptor]:
        for descriptor in self.MODELS:
            if descriptor.id == model_id:
                return descriptor
        return None

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        descriptor = self.find_model(model_id)
        if descriptor is None:
            return 0.0
        return descriptor.cost_for(input_tokens, output_tokens)

    def estimate_cost(self, request: GenerationRequest, model: Optional[str] = None) -> float:
        """
        Pre-flight cost estimate.

        Args:
            request: Request to price
            model: Model id override

        Returns:
            Estimated cost in USD; 0 for unknown models
        """
        model_id = model or self.resolve_model(request)
        input_tokens = self.estimate_tokens(request.prompt_text())
        output_tokens = request.max_tokens or DEFAULT_OUTPUT_TOKENS
        return self.calculate_cost(model_id, input_tokens, output_tokens)

    def _build_response(
        self,
        request: GenerationRequest,
        text: str,
        model: str,
        started: float,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        finish_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GenerationResponse:
        """Assemble the uniform response, estimating tokens the vendor did not report."""
        if not input_tokens:
            input_tokens = self.estimate_tokens(request.prompt_text())
        if not output_tokens:
            output_tokens = self.estimate_tokens(text)

        return GenerationResponse(
            text=text,
            model=model,
            provider=self.name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(model, input_tokens, output_tokens),
            latency_ms=(time.perf_counter() - started) * 1000,
            cached=False,
            finish_reason=finish_reason or "stop",
            metadata=metadata or {},
        )

    # Public contract

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Perform one blocking round trip.

        Raises:
            ValidationError: Request rejected before any network call
            ProviderError: The vendor call failed
        """
        self.validate_request(request)
        model = self.resolve_model(request)
        started = time.perf_counter()
        return await self._generate(request, model, started)

    async def generate_stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """
        Yield incremental text segments.

        Raises:
            UnsupportedOperationError: Adapter cannot stream
        """
        if not self.supports(ProviderCapability.STREAMING):
            raise UnsupportedOperationError(
                f"Streaming not supported for provider: {self.name}",
                provider=self.name,
            )

        self.validate_request(request)
        model = self.resolve_model(request)

        text = ""
        finished = False
        segments = self._generate_stream(request, model)
        try:
            async for delta, finish_reason in segments:
                text += delta
                finished = finish_reason is not None
                yield StreamChunk(
                    text=text,
                    delta=delta,
                    done=finished,
                    finish_reason=finish_reason,
                    metadata={"model": model, "provider": self.name},
                )
                if finished:
                    break
        finally:
            await segments.aclose()

        if not finished:
            yield StreamChunk(
                text=text,
                delta="",
                done=True,
                finish_reason="stop",
                metadata={"model": model, "provider": self.name},
            )

    async def get_models(self) -> List[ModelDescriptor]:
        """Known models with pricing. Override to query the provider."""
        return [m.model_copy() for m in self.MODELS]

    async def is_available(self) -> bool:
        """Cheap liveness probe. Never raises."""
        try:
            return await self._probe()
        except Exception as e:
            logger.debug(f"{self.name} availability probe failed: {e}")
            return False

    @abstractmethod
    async def _generate(
        self,
        request: GenerationRequest,
        model: str,
        started: float,
    ) -> GenerationResponse:
        """Vendor round trip. Request is already validated."""

    async def _generate_stream(
        self,
        request: GenerationRequest,
        model: str,
    ) -> AsyncIterator[Tuple[str, Optional[str]]]:
        """Yield ``(delta, finish_reason)`` pairs. Streaming adapters override this."""
        raise UnsupportedOperationError(
            f"Streaming not supported for provider: {self.name}",
            provider=self.name,
        )
        yield  # pragma: no cover

    @abstractmethod
    async def _probe(self) -> bool:
        """Minimal request proving the provider is reachable."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, base_url={self._base_url!r})"
