"""
Provider registry for managing and selecting provider adapters.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Type

from ..models.request import GenerationRequest
from .config import GatewaySettings, ProviderConfig
from .errors import ConfigurationError
from .interface import BaseProvider
from .strategy import SelectionStrategy

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry for provider adapters.

    Holds at most one adapter instance per provider identity and picks the
    first usable one for a selection strategy.
    """

    def __init__(self, adapter_classes: Optional[Dict[str, Type[BaseProvider]]] = None):
        """
        Initialize the registry.

        Args:
            adapter_classes: Provider identity to adapter class map. Defaults
                to the built-in adapters.
        """
        if adapter_classes is None:
            from ..adapters import PROVIDER_CLASSES
            adapter_classes = PROVIDER_CLASSES

        self._adapter_classes: Dict[str, Type[BaseProvider]] = dict(adapter_classes)
        self._instances: Dict[str, BaseProvider] = {}

    def register_class(self, provider: str, adapter_class: Type[BaseProvider]) -> None:
        """Make a new provider identity constructible from config."""
        self._adapter_classes[provider] = adapter_class
        logger.info(f"Registered adapter class for provider: {provider}")

    async def register(self, config: ProviderConfig) -> BaseProvider:
        """
        Build and register the adapter for ``config.provider``.

        An existing adapter for the same identity is closed and replaced.

        Raises:
            ConfigurationError: Unknown provider or missing credential
        """
        adapter_class = self._adapter_classes.get(config.provider)
        if adapter_class is None:
            raise ConfigurationError(
                f"Unknown provider: {config.provider}",
                provider=config.provider,
            )

        return await self.register_adapter(adapter_class(config))

    async def register_adapter(self, adapter: BaseProvider) -> BaseProvider:
        """Register a pre-built adapter, replacing any previous one."""
        previous = self._instances.get(adapter.name)
        if previous is not None and previous is not adapter:
            await previous.disconnect()

        self._instances[adapter.name] = adapter
        logger.info(f"Registered provider: {adapter.name}")
        return adapter

    async def register_from_settings(self, settings: GatewaySettings) -> List[str]:
        """
        Register every configured provider.

        Providers whose credential or endpoint is missing are skipped.

        Returns:
            Identities that were registered
        """
        registered = []
        for config in settings.providers:
            try:
                await self.register(config)
            except ConfigurationError as e:
                logger.warning(f"Skipping provider {config.provider}: {e.message}")
                continue
            registered.append(config.provider)
        return registered

    def get(self, provider: str) -> Optional[BaseProvider]:
        return self._instances.get(provider)

    def providers(self) -> List[str]:
        return list(self._instances.keys())

    def is_registered(self, provider: str) -> bool:
        return provider in self._instances

    def config_for(self, provider: str) -> Optional[ProviderConfig]:
        adapter = self._instances.get(provider)
        return adapter.config if adapter else None

    def _meets_criteria(
        self,
        adapter: BaseProvider,
        strategy: SelectionStrategy,
        request: Optional[GenerationRequest],
    ) -> bool:
        criteria = strategy.criteria
        if criteria is None:
            return True

        for capability in criteria.required_capabilities:
            if not adapter.supports(capability):
                logger.debug(f"{adapter.name} lacks capability {capability}")
                return False

        if criteria.max_cost is not None and request is not None:
            estimate = adapter.estimate_cost(request)
            if estimate > criteria.max_cost:
                logger.debug(f"{adapter.name} estimate {estimate:.6f} exceeds ceiling {criteria.max_cost}")
                return False

        return True

    async def select(
        self,
        strategy: SelectionStrategy,
        request: Optional[GenerationRequest] = None,
    ) -> Optional[BaseProvider]:
        """
        Pick the first registered, eligible and available candidate.

        Candidates are probed one at a time in strategy order; the walk stops
        at the first available adapter.

        Args:
            strategy: Primary and fallbacks to walk
            request: Request used for the cost ceiling, if any

        Returns:
            Selected adapter or None
        """
        max_latency = strategy.criteria.max_latency_ms if strategy.criteria else None

        for provider in strategy.candidates():
            adapter = self._instances.get(provider)
            if adapter is None:
                continue

            if not self._meets_criteria(adapter, strategy, request):
                continue

            started = time.perf_counter()
            available = await adapter.is_available()
            probe_ms = (time.perf_counter() - started) * 1000

            if not available:
                logger.info(f"Provider {provider} unavailable, trying next candidate")
                continue

            if max_latency is not None and probe_ms > max_latency:
                logger.info(f"Provider {provider} probe took {probe_ms:.0f}ms, over {max_latency}ms")
                continue

            if provider != strategy.primary:
                logger.info(f"Falling back to provider {provider}")
            return adapter

        return None

    async def health_check(self) -> Dict[str, bool]:
        """Probe every registered adapter concurrently."""
        names = list(self._instances.keys())
        results = await asyncio.gather(
            *(self._instances[name].is_available() for name in names)
        )
        return dict(zip(names, results))

    async def close(self) -> None:
        """Close every adapter's HTTP client."""
        for adapter in self._instances.values():
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect provider {adapter.name}: {e}")
