"""
OpenRouter Provider - Async Version
====================================

Async reasoning provider using httpx against the OpenRouter chat API.
"""

import os
import logging
from typing import List, Dict, Optional

import httpx

from providers.reasoning_provider import ReasoningProvider

logger = logging.getLogger(__name__)


class AsyncOpenRouterProvider(ReasoningProvider):
    """
    Async reasoning provider using OpenRouter API with httpx.

    A shared AsyncClient may be injected (tests use httpx.MockTransport);
    otherwise one client is opened per request.
    """

    def __init__(
        self,
        model: str = "xiaomi/mimo-v2-flash:free",
        api_key: Optional[str] = None,
        base_url: str = "https://openrouter.ai/api/v1",
        temperature: float = 0.3,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize async OpenRouter provider.

        Args:
            model: Model name
            api_key: OpenRouter API key
            base_url: API base URL
            temperature: Default sampling temperature
            timeout: Request timeout in seconds
            client: Optional shared httpx.AsyncClient
        """
        self.model = model
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. "
                "Set OPENROUTER_API_KEY env var or pass api_key parameter."
            )

        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout
        self.client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Semantic Mediator"
        }

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> Dict:
        """
        Async chat completion.

        Args:
            messages: List of message dicts
            temperature: Override default temperature
            max_tokens: Optional completion cap

        Returns:
            Dict with 'content' and 'usage'
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "stream": False
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        if self.client is not None:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers()
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers()
                )

        if not response.is_success:
            logger.error(f"❌ [OpenRouter] {response.status_code}: {response.text}")

        response.raise_for_status()

        data = response.json()
        usage = data.get("usage", {})
        if usage:
            logger.debug(f"📊 [OpenRouter] Token usage: {usage.get('total_tokens', 0)} tokens")

        return {
            "content": data["choices"][0]["message"].get("content") or "",
            "usage": usage
        }

    async def generate_content(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> str:
        response = await self.chat(
            self.build_messages(prompt, system_prompt),
            temperature=temperature,
            max_tokens=max_tokens
        )
        return response["content"]
