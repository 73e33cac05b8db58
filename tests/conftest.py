"""
Shared fixtures for gateway tests.
"""

import pytest

from llm_gateway.cache import InMemoryResponseCache
from llm_gateway.core.registry import ProviderRegistry
from llm_gateway.core.strategy import StrategyTable
from llm_gateway.service import GatewayService
from llm_gateway.tracking import CostTracker


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_registry():
    """Factory building a registry holding the given adapters."""
    async def factory(*adapters):
        registry = ProviderRegistry(adapter_classes={})
        for adapter in adapters:
            await registry.register_adapter(adapter)
        return registry
    return factory


@pytest.fixture
def make_gateway(make_registry, clock):
    """Factory building a gateway over the given adapters."""
    async def factory(*adapters, cache="memory", tracker=None, strategies=None):
        registry = await make_registry(*adapters)
        if cache == "memory":
            cache = InMemoryResponseCache(clock=clock, sweep_interval=0)
        return GatewayService(
            registry=registry,
            cache=cache,
            tracker=tracker if tracker is not None else CostTracker(),
            strategies=strategies or StrategyTable(),
        )
    return factory
