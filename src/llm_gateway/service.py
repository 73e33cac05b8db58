"""
Gateway service: the single entry point for generation calls.

Orchestrates cache lookup, provider selection, dispatch, cache population
and usage recording.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Dict, List, Optional, Set

from opentelemetry import trace
from pydantic import BaseModel

from .cache import InMemoryResponseCache, RedisResponseCache, ResponseCache, build_cache_key, ttl_for
from .cache.base import CacheStats
from .core.config import CacheSettings, GatewaySettings, load_settings
from .core.errors import (
    CacheError,
    ConfigurationError,
    ProviderError,
    ProviderUnavailableError,
    UnsupportedOperationError,
)
from .core.interface import BaseProvider
from .core.registry import ProviderRegistry
from .core.strategy import SelectionStrategy, StrategyTable
from .models.catalog import ModelDescriptor, ProviderCapability
from .models.request import GenerationRequest, TaskType
from .models.response import GenerationResponse, StreamChunk
from .models.usage import EXCERPT_LENGTH, UsageLogRecord
from .tracking import CostTracker, InMemoryUsageStore, PostgresUsageStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class GenerateOptions(BaseModel):
    """Per-call options for the gateway."""
    provider: Optional[str] = None
    task_type: Optional[TaskType] = None
    strategy: Optional[SelectionStrategy] = None
    use_cache: bool = True
    cache_ttl: Optional[int] = None
    track_cost: bool = True
    user_id: Optional[str] = None
    project_id: Optional[str] = None


class GatewayService:
    """
    LLM gateway.

    Args:
        registry: Provider registry with adapters already registered
        cache: Response cache, or None to disable caching
        tracker: Cost tracker, or None to disable usage recording
        strategies: Task-type routing table
        cache_settings: Key prefix, image fingerprint size and default TTL
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: Optional[ResponseCache] = None,
        tracker: Optional[CostTracker] = None,
        strategies: Optional[StrategyTable] = None,
        cache_settings: Optional[CacheSettings] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.tracker = tracker
        self.strategies = strategies or StrategyTable()
        self._cache_settings = cache_settings or CacheSettings()
        self._pending: Set[asyncio.Task] = set()

    async def start(self) -> None:
        if self.cache is not None:
            await self.cache.start()
        if self.tracker is not None:
            await self.tracker.start()
        logger.info(f"Gateway started with providers: {self.registry.providers()}")

    async def close(self) -> None:
        await self.flush()
        if self.cache is not None:
            await self.cache.close()
        if self.tracker is not None:
            await self.tracker.close()
        await self.registry.close()

    async def flush(self) -> None:
        """Wait for pending usage writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Provider resolution

    def _pinned(self, provider: Optional[str]) -> Optional[BaseProvider]:
        if provider is None:
            return None
        adapter = self.registry.get(provider)
        if adapter is None:
            raise ConfigurationError(f"Provider {provider} is not registered", provider=provider)
        return adapter

    async def _select(self, request: GenerationRequest, options: GenerateOptions) -> BaseProvider:
        strategy = options.strategy or self.strategies.resolve(options.task_type)

        with tracer.start_as_current_span("llm.select_provider") as span:
            span.set_attribute("llm.strategy.primary", strategy.primary)
            adapter = await self.registry.select(strategy, request)

            if adapter is None:
                raise ProviderUnavailableError(
                    f"No available LLM provider found (tried {', '.join(strategy.candidates())})"
                )

            span.set_attribute("llm.provider", adapter.name)
            return adapter

    # Cache helpers

    def _cache_key(self, request: GenerationRequest, pinned: Optional[BaseProvider]) -> str:
        model = request.model or (pinned.default_model if pinned else None)
        return build_cache_key(
            request,
            model,
            prefix=self._cache_settings.key_prefix,
            image_fingerprint_bytes=self._cache_settings.image_fingerprint_bytes,
        )

    async def _cache_get(self, key: str) -> Optional[GenerationResponse]:
        with tracer.start_as_current_span("llm.cache_lookup") as span:
            try:
                response = await self.cache.get(key)
            except CacheError as e:
                logger.warning(f"Cache lookup failed: {e.message}")
                return None
            span.set_attribute("llm.cache_hit", response is not None)
            return response

    async def _cache_set(self, key: str, response: GenerationResponse, ttl: int) -> None:
        try:
            await self.cache.set(key, response, ttl)
        except CacheError as e:
            logger.warning(f"Cache store failed: {e.message}")

    # Usage recording

    def _record(self, record: UsageLogRecord, options: GenerateOptions) -> None:
        if self.tracker is None or not options.track_cost:
            return

        task = asyncio.create_task(self.tracker.track_usage(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _record_failure(
        self,
        adapter: BaseProvider,
        request: GenerationRequest,
        options: GenerateOptions,
        error: ProviderError,
        latency_ms: float,
    ) -> None:
        self._record(
            UsageLogRecord(
                user_id=options.user_id,
                project_id=options.project_id,
                provider=adapter.name,
                model=adapter.resolve_model(request),
                latency_ms=latency_ms,
                task_type=options.task_type,
                status="error",
                error_code=error.code,
                prompt_excerpt=request.prompt[:EXCERPT_LENGTH],
                metadata={"error": error.message},
            ),
            options,
        )

    # Public API

    async def generate(
        self,
        request: GenerationRequest,
        options: Optional[GenerateOptions] = None,
    ) -> GenerationResponse:
        """
        Generate a response.

        Args:
            request: Generation request
            options: Provider pin, task type, strategy, cache and tracking flags

        Returns:
            Provider response, or a cached copy with ``cached=True``

        Raises:
            ConfigurationError: Pinned provider is not registered
            ProviderUnavailableError: No candidate was available
            ValidationError: Request rejected by the adapter
            ProviderError: The provider call failed
        """
        options = options or GenerateOptions()

        with tracer.start_as_current_span("llm.generate") as span:
            if options.task_type:
                span.set_attribute("llm.task_type", options.task_type.value)

            pinned = self._pinned(options.provider)
            use_cache = options.use_cache and self.cache is not None

            cache_key = None
            if use_cache:
                cache_key = self._cache_key(request, pinned)
                cached = await self._cache_get(cache_key)
                if cached is not None:
                    response = cached.model_copy(update={"cached": True}, deep=True)
                    span.set_attribute("llm.cached", True)
                    span.set_attribute("llm.provider", response.provider)
                    self._record(
                        UsageLogRecord.from_response(
                            response, request.prompt, options.user_id, options.project_id, options.task_type
                        ),
                        options,
                    )
                    return response

            adapter = pinned or await self._select(request, options)
            span.set_attribute("llm.provider", adapter.name)

            started = time.perf_counter()
            try:
                response = await adapter.generate(request)
            except ProviderError as e:
                span.set_attribute("llm.error", e.code)
                self._record_failure(adapter, request, options, e, (time.perf_counter() - started) * 1000)
                raise

            span.set_attribute("llm.model", response.model)
            span.set_attribute("llm.tokens", response.total_tokens)
            span.set_attribute("llm.cost", response.cost)

            if use_cache and not response.cached:
                ttl = options.cache_ttl
                if ttl is None:
                    ttl = ttl_for(options.task_type, self._cache_settings.ttl)
                if ttl > 0:
                    await self._cache_set(cache_key, response, ttl)

            self._record(
                UsageLogRecord.from_response(
                    response, request.prompt, options.user_id, options.project_id, options.task_type
                ),
                options,
            )
            return response

    async def generate_stream(
        self,
        request: GenerationRequest,
        options: Optional[GenerateOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a response. Never reads or writes the cache.

        Usage is recorded once the stream has been drained.

        Raises:
            UnsupportedOperationError: Selected adapter cannot stream
        """
        options = options or GenerateOptions()
        adapter = self._pinned(options.provider) or await self._select(request, options)

        if not adapter.supports(ProviderCapability.STREAMING):
            raise UnsupportedOperationError(
                f"Streaming not supported for provider: {adapter.name}",
                provider=adapter.name,
            )

        span = tracer.start_span("llm.generate_stream")
        span.set_attribute("llm.provider", adapter.name)
        started = time.perf_counter()
        last: Optional[StreamChunk] = None

        try:
            async for chunk in adapter.generate_stream(request):
                last = chunk
                yield chunk
        except ProviderError as e:
            span.set_attribute("llm.error", e.code)
            self._record_failure(adapter, request, options, e, (time.perf_counter() - started) * 1000)
            raise
        finally:
            span.end()

        if last is None:
            return

        model = last.metadata.get("model") or adapter.resolve_model(request)
        input_tokens = adapter.estimate_tokens(request.prompt_text())
        output_tokens = adapter.estimate_tokens(last.text)

        self._record(
            UsageLogRecord(
                user_id=options.user_id,
                project_id=options.project_id,
                provider=adapter.name,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cost=adapter.calculate_cost(model, input_tokens, output_tokens),
                latency_ms=(time.perf_counter() - started) * 1000,
                task_type=options.task_type,
                finish_reason=last.finish_reason,
                prompt_excerpt=request.prompt[:EXCERPT_LENGTH],
                response_excerpt=last.text[:EXCERPT_LENGTH],
                metadata={"stream": True},
            ),
            options,
        )

    async def estimate_cost(
        self,
        request: GenerationRequest,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> float:
        """Pre-flight cost estimate. Returns 0 when no adapter is usable."""
        if provider:
            adapter = self.registry.get(provider)
        else:
            adapter = await self.registry.select(self.strategies.default, request)

        if adapter is None:
            return 0.0
        return adapter.estimate_cost(request, model)

    async def health_check(self) -> Dict[str, bool]:
        return await self.registry.health_check()

    async def get_available_models(self) -> List[ModelDescriptor]:
        """Models from every registered provider. Failing providers are skipped."""
        models: List[ModelDescriptor] = []
        for name in self.registry.providers():
            adapter = self.registry.get(name)
            try:
                models.extend(await adapter.get_models())
            except Exception as e:
                logger.warning(f"Failed to list models for {name}: {e}")
        return models

    async def get_cache_stats(self) -> Optional[CacheStats]:
        if self.cache is None:
            return None
        return await self.cache.stats()


def build_cache(settings: CacheSettings) -> Optional[ResponseCache]:
    if not settings.enabled:
        return None
    if settings.redis_url:
        return RedisResponseCache(
            redis_url=settings.redis_url,
            default_ttl=settings.ttl,
            key_prefix=settings.key_prefix,
        )
    return InMemoryResponseCache(
        default_ttl=settings.ttl,
        max_size_mb=settings.max_size_mb,
        max_entries=settings.max_entries,
        sweep_interval=settings.sweep_interval,
    )


async def build_gateway(
    settings: Optional[GatewaySettings] = None,
    registry: Optional[ProviderRegistry] = None,
) -> GatewayService:
    """
    Build a gateway from settings.

    Args:
        settings: Gateway settings. Loaded from the environment when omitted.
        registry: Registry to populate. A new one is created when omitted.

    Returns:
        Gateway service (not yet started)
    """
    settings = settings or load_settings()
    registry = registry or ProviderRegistry()

    registered = await registry.register_from_settings(settings)
    if not registered:
        logger.warning("No LLM providers configured")

    tracking = settings.tracking
    store = PostgresUsageStore(tracking.database_url) if tracking.database_url else InMemoryUsageStore()
    tracker = CostTracker(
        store=store,
        enabled=tracking.enabled,
        alert_threshold=tracking.alert_threshold,
    )

    return GatewayService(
        registry=registry,
        cache=build_cache(settings.cache),
        tracker=tracker,
        strategies=StrategyTable(default=settings.default_strategy),
        cache_settings=settings.cache,
    )
