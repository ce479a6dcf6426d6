"""
Model profiles and pricing.

Holds the static context-window, output-limit and per-token cost data for
each supported model, and the cost computation built on it.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .token_counter import TokenUsage

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelProfile:
    """Limits and per-token pricing for a specific model."""
    name: str
    context_window: int
    max_output_tokens: int
    input_cost_per_token: Decimal
    output_cost_per_token: Decimal

    def __post_init__(self):
        """Validate profile limits are positive."""
        if self.context_window <= 0:
            raise ValueError(f"context_window for {self.name} must be > 0")
        if self.max_output_tokens <= 0:
            raise ValueError(f"max_output_tokens for {self.name} must be > 0")
        if self.input_cost_per_token < 0 or self.output_cost_per_token < 0:
            raise ValueError(f"token costs for {self.name} must be >= 0")


@dataclass(frozen=True)
class ModelRegistry:
    """Immutable lookup of model profiles keyed by model name."""
    profiles: Mapping[str, ModelProfile] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "profiles", MappingProxyType(dict(self.profiles)))

    def get_profile(self, model: str) -> ModelProfile:
        """Get the profile for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelProfile for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.profiles:
            raise ValueError(f"Unsupported model: {model}")
        return self.profiles[model]

    def names(self) -> List[str]:
        return sorted(self.profiles)


def _per_million(amount: str) -> Decimal:
    return Decimal(amount) / ONE_MILLION


# gpt-4-turbo-preview only allows 4K output tokens despite its 128K context window
DEFAULT_MODEL_PROFILES: Mapping[str, ModelProfile] = MappingProxyType({
    "gpt-4-0613": ModelProfile(
        name="gpt-4-0613",
        context_window=8192,
        max_output_tokens=8192,
        input_cost_per_token=_per_million("30"),
        output_cost_per_token=_per_million("60"),
    ),
    "gpt-4-vision-preview": ModelProfile(
        name="gpt-4-vision-preview",
        context_window=128000,
        max_output_tokens=4096,
        input_cost_per_token=_per_million("10"),
        output_cost_per_token=_per_million("30"),
    ),
    "gpt-4-turbo-preview": ModelProfile(
        name="gpt-4-turbo-preview",
        context_window=128000,
        max_output_tokens=4096,
        input_cost_per_token=_per_million("10"),
        output_cost_per_token=_per_million("30"),
    ),
})


def build_model_registry(overrides: Optional[Dict[str, ModelProfile]] = None) -> ModelRegistry:
    """Build a registry from the default profiles plus any configured ones.

    Configured profiles replace defaults of the same name.
    """
    profiles = dict(DEFAULT_MODEL_PROFILES)
    if overrides:
        profiles.update(overrides)
    return ModelRegistry(profiles)


def calculate_cost(profile: ModelProfile, usage: TokenUsage) -> float:
    """Calculate the total cost of a completed request.

    Args:
        profile: Profile of the model that served the request
        usage: Token usage reported by the provider

    Returns:
        prompt_tokens * input cost + completion_tokens * output cost, unrounded
    """
    prompt_cost = Decimal(usage.prompt_tokens) * profile.input_cost_per_token
    completion_cost = Decimal(usage.completion_tokens) * profile.output_cost_per_token
    return float(prompt_cost + completion_cost)
