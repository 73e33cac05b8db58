"""
Core gateway components.
"""

from .interface import BaseProvider
from .registry import ProviderRegistry
from .config import (
    GatewaySettings,
    ProviderConfig,
    CacheSettings,
    TrackingSettings,
    load_settings,
    settings_from_env,
)
from .strategy import (
    SelectionCriteria,
    SelectionStrategy,
    StrategyTable,
    DEFAULT_STRATEGY,
    DEFAULT_TASK_STRATEGIES,
)
from .errors import (
    GatewayError,
    ConfigurationError,
    ValidationError,
    ProviderUnavailableError,
    UnsupportedOperationError,
    ProviderError,
    ProviderConnectionError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    CacheError,
    TrackingError,
)

__all__ = [
    "BaseProvider",
    "ProviderRegistry",
    "GatewaySettings",
    "ProviderConfig",
    "CacheSettings",
    "TrackingSettings",
    "load_settings",
    "settings_from_env",
    "SelectionCriteria",
    "SelectionStrategy",
    "StrategyTable",
    "DEFAULT_STRATEGY",
    "DEFAULT_TASK_STRATEGIES",
    "GatewayError",
    "ConfigurationError",
    "ValidationError",
    "ProviderUnavailableError",
    "UnsupportedOperationError",
    "ProviderError",
    "ProviderConnectionError",
    "ProviderAuthenticationError",
    "ProviderRateLimitError",
    "CacheError",
    "TrackingError",
]
