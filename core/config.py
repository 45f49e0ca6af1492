"""
Mediator Configuration
======================

Tunables for the registry, caches, resolver and provider, loadable from the
environment (and a local .env file).
"""

import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from core.errors import ConfigurationError


class MediatorConfig(BaseModel):
    """
    Configuration for a SemanticMediator instance.

    Example:
        >>> config = MediatorConfig.from_env()
        >>> config.similarity_threshold
        0.85
    """

    # Discovery / retrieval
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0, description="Default cache retrieval threshold")
    source_discovery_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Default findPotentialSources threshold")

    # Adaptive tuning
    predictive_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum confidence for predicted paths")
    predictive_threshold_bounds: Tuple[float, float] = Field(
        default=(0.3, 0.95),
        description="Hard bounds for adaptive predictive threshold adjustments"
    )
    adaptive_rate: float = Field(default=0.05, gt=0.0, le=0.5, description="Step applied on threshold recommendations")

    # CacheEntry store
    cache_max_entries: int = Field(default=1000, gt=0, description="Maximum entries before eviction")
    cache_default_ttl: float = Field(default=1800.0, gt=0.0, description="Validation-context time-to-live in seconds")
    cache_min_semantic_relevance: float = Field(default=0.5, ge=0.0, le=1.0, description="Entries below this relevance are rejected")
    cache_sweep_interval: float = Field(default=300.0, gt=0.0, description="Seconds between expired-entry sweeps")

    # Default in-memory store
    memory_max_records_per_type: int = Field(default=5000, gt=0, description="Oldest records of a type are dropped past this count")

    # Human review
    review_timeout: float = Field(default=3600.0, ge=0.0, description="Seconds before a pending review times out; 0 disables")

    # Reasoning provider
    provider: str = Field(default="openrouter", description="openrouter or ollama")
    model: str = Field(default="xiaomi/mimo-v2-flash:free", description="Model name for the provider")
    provider_base_url: Optional[str] = Field(default=None, description="Override provider base URL")
    provider_timeout: float = Field(default=30.0, gt=0.0, description="Transport timeout in seconds")
    circuit_breaker_threshold: int = Field(default=5, gt=0, description="Failures before the circuit opens")
    circuit_breaker_timeout: float = Field(default=60.0, gt=0.0, description="Seconds before a trial call")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    @model_validator(mode="after")
    def _check_bounds(self):
        low, high = self.predictive_threshold_bounds
        if not 0.0 <= low <= high <= 1.0:
            raise ValueError(f"predictive_threshold_bounds must satisfy 0 <= low <= high <= 1, got {low}, {high}")
        return self

    def clamp_predictive_threshold(self, value: float) -> float:
        low, high = self.predictive_threshold_bounds
        return max(low, min(high, value))

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "MediatorConfig":
        """
        Build configuration from MEDIATOR_* environment variables.

        Args:
            dotenv_path: Optional .env file to load first

        Returns:
            MediatorConfig

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        load_dotenv(dotenv_path)

        mapping = {
            "similarity_threshold": "MEDIATOR_SIMILARITY_THRESHOLD",
            "source_discovery_threshold": "MEDIATOR_SOURCE_DISCOVERY_THRESHOLD",
            "predictive_threshold": "MEDIATOR_PREDICTIVE_THRESHOLD",
            "adaptive_rate": "MEDIATOR_ADAPTIVE_RATE",
            "cache_max_entries": "MEDIATOR_CACHE_MAX_ENTRIES",
            "cache_default_ttl": "MEDIATOR_CACHE_TTL",
            "cache_min_semantic_relevance": "MEDIATOR_CACHE_MIN_RELEVANCE",
            "cache_sweep_interval": "MEDIATOR_CACHE_SWEEP_INTERVAL",
            "memory_max_records_per_type": "MEDIATOR_MEMORY_MAX_RECORDS_PER_TYPE",
            "review_timeout": "MEDIATOR_REVIEW_TIMEOUT",
            "provider": "MEDIATOR_PROVIDER",
            "model": "MEDIATOR_MODEL",
            "provider_base_url": "MEDIATOR_PROVIDER_BASE_URL",
            "provider_timeout": "MEDIATOR_PROVIDER_TIMEOUT",
            "circuit_breaker_threshold": "MEDIATOR_CIRCUIT_BREAKER_THRESHOLD",
            "circuit_breaker_timeout": "MEDIATOR_CIRCUIT_BREAKER_TIMEOUT",
            "log_level": "MEDIATOR_LOG_LEVEL",
            "log_file": "MEDIATOR_LOG_FILE",
        }

        values = {}
        for field_name, env_name in mapping.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid mediator configuration: {e}") from e
