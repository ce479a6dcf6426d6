"""
Configuration management and loading.

Handles dispatcher settings loaded from YAML. Secrets are never read from
the config file; API keys come from the environment.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from jacob_gpt.core.pricing import ModelProfile, ModelRegistry, build_model_registry
from jacob_gpt.storage.db import DEFAULT_DB_PATH

DEFAULT_BASE_URL = "https://api.portkey.ai/v1/proxy"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
PORTKEY_API_KEY_ENV = "PORTKEY_API_KEY"


@dataclass(frozen=True)
class ProxyConfig:
    """Headers controlling the caching/retrying proxy in front of OpenAI."""
    mode: str = "proxy openai"
    cache: str = "simple"
    retry_count: int = 3

    def __post_init__(self):
        if self.retry_count < 0:
            raise ValueError("proxy retry_count must be >= 0")


@dataclass(frozen=True)
class DispatchConfig:
    """Complete dispatcher configuration."""
    base_url: Optional[str] = DEFAULT_BASE_URL
    default_model: str = "gpt-4-turbo-preview"
    vision_model: str = "gpt-4-vision-preview"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.2
    # rate limit is 40K tokens per minute, so backoff starts at 60 seconds
    retries: int = 10
    initial_delay_ms: int = 60000
    schema_max_retries: int = 3
    db_path: str = DEFAULT_DB_PATH
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    models: Dict[str, ModelProfile] = field(default_factory=dict)

    def __post_init__(self):
        """Validate numeric settings and model references."""
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be >= 0")
        if self.schema_max_retries < 1:
            raise ValueError("schema_max_retries must be >= 1")
        registry = self.build_registry()
        for key in ("default_model", "vision_model"):
            registry.get_profile(getattr(self, key))

    def build_registry(self) -> ModelRegistry:
        return build_model_registry(self.models)


_TOP_LEVEL_KEYS = {
    "base_url", "default_model", "vision_model", "system_prompt", "temperature",
    "retries", "initial_delay_ms", "schema_max_retries", "db_path", "proxy", "models",
}
_PROXY_KEYS = {"mode", "cache", "retry_count"}
_MODEL_KEYS = {
    "context_window", "max_output_tokens",
    "input_cost_per_million", "output_cost_per_million",
}


def load_dispatch_config(path: str) -> DispatchConfig:
    """Load and validate dispatcher configuration from a YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated DispatchConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Dispatch config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - _TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    kwargs: Dict[str, Any] = {}

    for key in ("base_url", "default_model", "vision_model", "system_prompt", "db_path"):
        if key in raw_config:
            kwargs[key] = _require_str(raw_config[key], key)

    if "temperature" in raw_config:
        value = raw_config["temperature"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("'temperature' must be a number")
        kwargs["temperature"] = float(value)

    for key in ("retries", "initial_delay_ms", "schema_max_retries"):
        if key in raw_config:
            kwargs[key] = _require_int(raw_config[key], key)

    if "proxy" in raw_config:
        kwargs["proxy"] = _parse_proxy_config(raw_config["proxy"])

    models_data = raw_config.get("models") or {}
    if not isinstance(models_data, dict):
        raise ValueError("'models' must be a dictionary")
    kwargs["models"] = {
        name: _parse_model_profile(name, data) for name, data in models_data.items()
    }

    return DispatchConfig(**kwargs)


def _require_str(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{path}' must be a non-empty string")
    return value


def _require_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _parse_proxy_config(data: Any) -> ProxyConfig:
    if not isinstance(data, dict):
        raise ValueError("'proxy' must be a dictionary")

    unknown_keys = set(data.keys()) - _PROXY_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in proxy: {unknown_keys}")

    kwargs: Dict[str, Any] = {}
    for key in ("mode", "cache"):
        if key in data:
            kwargs[key] = _require_str(data[key], f"proxy.{key}")
    if "retry_count" in data:
        kwargs["retry_count"] = _require_int(data["retry_count"], "proxy.retry_count")
    return ProxyConfig(**kwargs)


def _parse_model_profile(name: str, data: Any) -> ModelProfile:
    """Parse and validate a model profile.

    Args:
        name: Model name
        data: Profile configuration data

    Returns:
        Validated ModelProfile

    Raises:
        ValueError: If the profile is invalid
    """
    path = f"models.{name}"
    if not isinstance(data, dict):
        raise ValueError(f"Model '{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _MODEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    missing = _MODEL_KEYS - set(data.keys())
    if missing:
        raise ValueError(f"Missing required keys in {path}: {sorted(missing)}")

    costs = {}
    for key in ("input_cost_per_million", "output_cost_per_million"):
        try:
            costs[key] = Decimal(str(data[key])) / Decimal("1000000")
        except InvalidOperation:
            raise ValueError(f"'{key}' in {path} must be a number")

    return ModelProfile(
        name=name,
        context_window=_require_int(data["context_window"], f"{path}.context_window"),
        max_output_tokens=_require_int(data["max_output_tokens"], f"{path}.max_output_tokens"),
        input_cost_per_token=costs["input_cost_per_million"],
        output_cost_per_token=costs["output_cost_per_million"],
    )
