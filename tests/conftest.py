"""
Shared fixtures: a scripted reasoning provider and an in-memory store.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
from typing import Any, Callable, List, Optional, Union

import pytest

from core.circuit_breaker import CircuitBreaker
from core.config import MediatorConfig
from memory_store.memory_store import InMemoryMemoryStore
from mediator.mediator import SemanticMediator
from providers.reasoning_client import ReasoningClient
from providers.reasoning_provider import ReasoningProvider

Reply = Union[str, dict, list, float, int, Exception]


class FakeReasoningProvider(ReasoningProvider):
    """
    Provider answering from a script.

    `handler(prompt, system_prompt)` wins when given; otherwise replies are
    popped from `replies` in order and `default` is used once they run out.
    Dicts and lists are sent as JSON text; Exceptions are raised.
    """

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        handler: Optional[Callable[[str, Optional[str]], Reply]] = None,
        default: Reply = "0"
    ):
        self.replies = list(replies or [])
        self.handler = handler
        self.default = default
        self.calls: List[dict] = []

    async def generate_content(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature})
        if self.handler is not None:
            reply = self.handler(prompt, system_prompt)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = self.default

        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return str(reply)

    def prompts_containing(self, text: str) -> List[str]:
        return [c["prompt"] for c in self.calls if text in c["prompt"]]


class FailingMemoryStore(InMemoryMemoryStore):
    """In-memory store whose writes (or everything) fail on demand."""

    def __init__(self, fail_saves: bool = True, fail_reads: bool = False):
        super().__init__()
        self.fail_saves = fail_saves
        self.fail_reads = fail_reads

    async def save(self, record):
        if self.fail_saves:
            raise ConnectionError("store offline")
        return await super().save(record)

    async def find(self, query, limit=None, sort_desc=True):
        if self.fail_reads:
            raise ConnectionError("store offline")
        return await super().find(query, limit, sort_desc)

    async def search(self, text, limit=10):
        if self.fail_reads:
            raise ConnectionError("store offline")
        return await super().search(text, limit)


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_reasoning(provider: ReasoningProvider, threshold: int = 100) -> ReasoningClient:
    """Client with a breaker that stays closed for the whole test."""
    return ReasoningClient(provider, CircuitBreaker(threshold=threshold, timeout=60, name="test"))


@pytest.fixture
def config():
    return MediatorConfig()


@pytest.fixture
def provider():
    return FakeReasoningProvider()


@pytest.fixture
def reasoning(provider):
    return make_reasoning(provider)


@pytest.fixture
def memory_store():
    return InMemoryMemoryStore()


@pytest.fixture
def mediator(reasoning, memory_store, config):
    return SemanticMediator(reasoning, memory_store, config)
