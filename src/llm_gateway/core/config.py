"""
Configuration loading for the LLM gateway.

Settings come from environment-style key/value pairs. A YAML file
(``LLM_GATEWAY_CONFIG``) can overlay them; ``${VAR}`` values inside it are
expanded from the environment.
"""

import os
import logging
from typing import Dict, List, Any, Optional, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ..models.catalog import Provider
from .errors import ConfigurationError
from .strategy import SelectionStrategy

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Configuration for a single provider. Read-only after startup."""
    provider: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    default_model: Optional[str] = None
    timeout: float = 60.0
    retries: int = 0
    retry_delay: float = 1.0
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CacheSettings:
    """Response cache configuration."""
    enabled: bool = True
    ttl: int = 3600
    max_size_mb: float = 100.0
    max_entries: int = 10000
    sweep_interval: float = 300.0
    key_prefix: str = "llm:"
    image_fingerprint_bytes: int = 64
    redis_url: Optional[str] = None


@dataclass
class TrackingSettings:
    """Cost tracking configuration."""
    enabled: bool = True
    alert_threshold: float = 1000.0
    database_url: Optional[str] = None


@dataclass
class GatewaySettings:
    """Complete gateway configuration."""
    providers: List[ProviderConfig] = field(default_factory=list)
    cache: CacheSettings = field(default_factory=CacheSettings)
    tracking: TrackingSettings = field(default_factory=TrackingSettings)
    default_strategy: Optional[SelectionStrategy] = None


# provider -> (env prefix, default model, default timeout in ms)
PROVIDER_ENV = {
    Provider.GEMINI: ("GEMINI", "gemini-2.5-flash", 60000),
    Provider.OPENAI: ("OPENAI", "gpt-4o-mini", 60000),
    Provider.ANTHROPIC: ("ANTHROPIC", "claude-3-5-sonnet-20241022", 60000),
    Provider.LOCAL: ("OLLAMA", "llama3:8b", 120000),
    Provider.HUGGINGFACE: ("HUGGINGFACE", "meta-llama/Llama-3-8b-chat-hf", 120000),
}


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _as_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric config value: {value!r}")
        return default


def _expand(value: Any, env: Mapping[str, str]) -> Any:
    """Expand ``${VAR}`` references."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return env.get(value[2:-1], "")
    return value


def _provider_from_env(provider: Provider, env: Mapping[str, str]) -> Optional[ProviderConfig]:
    """Build a provider config, or None if its credential/endpoint is absent."""
    prefix, default_model, default_timeout_ms = PROVIDER_ENV[provider]

    if provider == Provider.LOCAL:
        base_url = env.get("OLLAMA_BASE_URL")
        if not base_url and not _as_bool(env.get("LOCAL_LLM_ENABLED"), False):
            return None
        api_key = None
        base_url = base_url or "http://localhost:11434"
    else:
        api_key = env.get(f"{prefix}_API_KEY")
        if not api_key:
            return None
        base_url = env.get(f"{prefix}_BASE_URL") or None

    extra = {}
    if provider == Provider.LOCAL and env.get("LOCAL_LLM_RUNTIME"):
        extra["runtime"] = env["LOCAL_LLM_RUNTIME"]

    return ProviderConfig(
        provider=provider.value,
        api_key=api_key,
        base_url=base_url,
        default_model=env.get(f"{prefix}_DEFAULT_MODEL") or default_model,
        timeout=_as_float(env.get(f"{prefix}_TIMEOUT"), default_timeout_ms) / 1000.0,
        retries=int(_as_float(env.get(f"{prefix}_RETRIES"), 0)),
        retry_delay=_as_float(env.get(f"{prefix}_RETRY_DELAY"), 1000) / 1000.0,
        extra=extra,
    )


def settings_from_env(env: Optional[Mapping[str, str]] = None) -> GatewaySettings:
    """
    Build settings from environment-style key/value pairs.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        Gateway settings. Providers without credentials are left out.
    """
    env = os.environ if env is None else env

    providers = []
    for provider in PROVIDER_ENV:
        config = _provider_from_env(provider, env)
        if config is not None:
            providers.append(config)

    cache = CacheSettings(
        enabled=_as_bool(env.get("LLM_CACHE_ENABLED"), True),
        ttl=int(_as_float(env.get("LLM_CACHE_TTL"), 3600)),
        max_size_mb=_as_float(env.get("LLM_CACHE_MAX_SIZE"), 100.0),
        max_entries=int(_as_float(env.get("LLM_CACHE_MAX_ENTRIES"), 10000)),
        sweep_interval=_as_float(env.get("LLM_CACHE_SWEEP_INTERVAL"), 300.0),
        redis_url=env.get("REDIS_URL") or None,
    )

    tracking = TrackingSettings(
        enabled=_as_bool(env.get("LLM_COST_TRACKING_ENABLED"), True),
        alert_threshold=_as_float(env.get("LLM_COST_ALERT_THRESHOLD"), 1000.0),
        database_url=env.get("DATABASE_URL") or None,
    )

    default_strategy = None
    if env.get("LLM_PROVIDER"):
        default_strategy = SelectionStrategy.parse(
            env["LLM_PROVIDER"], env.get("LLM_FALLBACK_PROVIDERS")
        )

    return GatewaySettings(
        providers=providers,
        cache=cache,
        tracking=tracking,
        default_strategy=default_strategy,
    )


def _parse_config(data: Dict[str, Any], base: GatewaySettings, env: Mapping[str, str]) -> GatewaySettings:
    """Overlay a parsed YAML document onto env-derived settings."""
    providers = {p.provider: p for p in base.providers}

    for entry in data.get("providers", []) or []:
        name = entry.get("provider", "")
        api_key = _expand(entry.get("api_key"), env)
        base_url = _expand(entry.get("base_url"), env)

        if name != Provider.LOCAL.value and not api_key:
            logger.info(f"Skipping provider {name}: no credential configured")
            continue
        if name == Provider.LOCAL.value and not base_url:
            base_url = "http://localhost:11434"

        providers[name] = ProviderConfig(
            provider=name,
            api_key=api_key or None,
            base_url=base_url or None,
            default_model=entry.get("default_model"),
            timeout=float(entry.get("timeout", 60.0)),
            retries=int(entry.get("retries", 0)),
            retry_delay=float(entry.get("retry_delay", 1.0)),
            extra=entry.get("extra", {}) or {},
        )

    cache = base.cache
    if "cache" in data:
        cache = CacheSettings(**{**cache.__dict__, **(data["cache"] or {})})
        cache.redis_url = _expand(cache.redis_url, env) or None

    tracking = base.tracking
    if "tracking" in data:
        tracking = TrackingSettings(**{**tracking.__dict__, **(data["tracking"] or {})})
        tracking.database_url = _expand(tracking.database_url, env) or None

    default_strategy = base.default_strategy
    routing = data.get("routing") or {}
    if routing.get("primary"):
        default_strategy = SelectionStrategy(
            primary=routing["primary"],
            fallbacks=routing.get("fallbacks", []) or [],
        )

    return GatewaySettings(
        providers=list(providers.values()),
        cache=cache,
        tracking=tracking,
        default_strategy=default_strategy,
    )


def load_settings(
    config_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> GatewaySettings:
    """
    Load gateway settings.

    Args:
        config_path: Optional YAML overlay. Falls back to ``LLM_GATEWAY_CONFIG``.
        env: Environment mapping. Defaults to ``os.environ``.

    Returns:
        Loaded settings
    """
    env = os.environ if env is None else env
    settings = settings_from_env(env)

    config_path = config_path or env.get("LLM_GATEWAY_CONFIG")
    if not config_path:
        return settings

    if not Path(config_path).exists():
        logger.warning(f"Gateway config file not found: {config_path}, using environment only")
        return settings

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid gateway config {config_path}: {e}")

    return _parse_config(data, settings, env)
