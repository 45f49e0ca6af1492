"""
Ollama Provider
===============

Reasoning provider for a local Ollama server. The HTTP call is synchronous
(requests) and runs in a worker thread so the event loop never blocks.
"""
import asyncio
import logging
from typing import List, Dict, Optional

import requests

from providers.reasoning_provider import ReasoningProvider

logger = logging.getLogger(__name__)


class OllamaProvider(ReasoningProvider):
    """Provider for Ollama"""

    def __init__(
        self,
        model: str = "gemma3:1b",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.7,
        timeout: float = 60.0
    ):
        """
        Initialize provider

        Args:
            model: Model name
            base_url: Ollama base URL
            temperature: Default temperature
            timeout: Request timeout in seconds
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.temperature = temperature
        self.timeout = timeout

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Blocking chat completion

        Args:
            messages: Message list
            temperature: Override default temperature
            max_tokens: Maps to Ollama's num_predict

        Returns:
            Model response text
        """
        options = {"temperature": self.temperature if temperature is None else temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": options
        }

        response = requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        return data["message"]["content"]

    async def generate_content(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> str:
        return await asyncio.to_thread(
            self.chat,
            self.build_messages(prompt, system_prompt),
            temperature,
            max_tokens
        )

    def is_available(self) -> bool:
        """Check whether the Ollama server answers"""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=2)
            return response.status_code == 200
        except requests.RequestException:
            return False
