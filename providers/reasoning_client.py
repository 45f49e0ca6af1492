"""
Reasoning Client
================

Adapter every mediator component talks to instead of a raw provider.

- Calls go through a circuit breaker.
- Provider failures surface as ProviderUnavailableError.
- Unparsable structured answers surface as MalformedResponseError.
- score() never raises.
"""

import logging
from typing import Any, Optional

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from core.config import MediatorConfig
from core.errors import MalformedResponseError, ProviderUnavailableError
from core.json_utils import extract_json, parse_json_value, parse_score
from providers.reasoning_provider import ReasoningProvider

logger = logging.getLogger(__name__)


class ReasoningClient:
    """
    Adapter to standardize the reasoning interface used by the mediator.

    Example:
        >>> client = ReasoningClient(AsyncOpenRouterProvider())
        >>> similarity = await client.score("Rate 0-1 ...")
    """

    def __init__(self, provider: ReasoningProvider, circuit_breaker: Optional[CircuitBreaker] = None):
        self.provider = provider
        self.circuit_breaker = circuit_breaker or CircuitBreaker(threshold=5, timeout=60.0, name="reasoning")

    async def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> str:
        """
        Raw completion.

        Raises:
            ProviderUnavailableError: On any provider failure or open circuit
        """
        try:
            return await self.circuit_breaker.call(
                self.provider.generate_content,
                prompt,
                temperature=temperature,
                max_tokens=max_tokens,
                system_prompt=system_prompt
            )
        except CircuitBreakerOpenError as e:
            logger.warning(f"⚠️ [ReasoningClient] {e}")
            raise ProviderUnavailableError(str(e)) from e
        except Exception as e:
            logger.error(f"❌ [ReasoningClient] Provider call failed: {e}")
            raise ProviderUnavailableError(str(e)) from e

    async def generate_json(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> Any:
        """
        Completion parsed as a JSON object or array.

        Raises:
            ProviderUnavailableError: On provider failure
            MalformedResponseError: If the answer holds no JSON
        """
        text = await self.generate(prompt, temperature, max_tokens, system_prompt)
        return extract_json(text)

    async def generate_value(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> Any:
        """Completion parsed as any JSON value, scalars included."""
        text = await self.generate(prompt, temperature, max_tokens, system_prompt)
        return parse_json_value(text)

    async def score(self, prompt: str, system_prompt: Optional[str] = None) -> float:
        """
        Numeric judgment in [0, 1]. Failures and non-numeric answers give 0.0.
        """
        try:
            text = await self.generate(prompt, temperature=0.1, max_tokens=10, system_prompt=system_prompt)
        except ProviderUnavailableError:
            return 0.0
        return parse_score(text)


def create_provider(config: MediatorConfig) -> ReasoningProvider:
    """
    Build the configured provider.

    Raises:
        ValueError: Unknown provider name or missing API key
    """
    if config.provider == "ollama":
        from providers.ollama import OllamaProvider
        kwargs = {"model": config.model, "timeout": config.provider_timeout}
        if config.provider_base_url:
            kwargs["base_url"] = config.provider_base_url
        return OllamaProvider(**kwargs)

    if config.provider == "openrouter":
        from providers.openrouter_async import AsyncOpenRouterProvider
        kwargs = {"model": config.model, "timeout": config.provider_timeout}
        if config.provider_base_url:
            kwargs["base_url"] = config.provider_base_url
        return AsyncOpenRouterProvider(**kwargs)

    raise ValueError(f"Unknown reasoning provider: {config.provider}")


def create_reasoning_client(config: MediatorConfig, provider: Optional[ReasoningProvider] = None) -> ReasoningClient:
    breaker = CircuitBreaker(
        threshold=config.circuit_breaker_threshold,
        timeout=config.circuit_breaker_timeout,
        name="reasoning"
    )
    return ReasoningClient(provider or create_provider(config), breaker)
