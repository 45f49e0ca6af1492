"""
Reasoning Provider Interface
============================

Opaque text-completion service used for natural-language judgments
(similarity scoring, conflict synthesis, insight extraction).
"""

from abc import ABC, abstractmethod
from typing import Optional


class ReasoningProvider(ABC):
    """
    Text completion collaborator.

    Implementations may fail (timeout, transport, provider error); callers
    go through ReasoningClient, which turns failures into typed errors.
    """

    @abstractmethod
    async def generate_content(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> str:
        """
        Complete `prompt`.

        Args:
            prompt: User prompt
            temperature: Sampling temperature override
            max_tokens: Completion length cap
            system_prompt: Optional system message

        Returns:
            Plain completion text
        """
        pass

    @staticmethod
    def build_messages(prompt: str, system_prompt: Optional[str] = None):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages
