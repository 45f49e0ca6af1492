"""
Reasoning Providers
"""
from .reasoning_provider import ReasoningProvider
from .reasoning_client import ReasoningClient, create_provider, create_reasoning_client
from .openrouter_async import AsyncOpenRouterProvider
from .ollama import OllamaProvider

__all__ = [
    'ReasoningProvider',
    'ReasoningClient',
    'create_provider',
    'create_reasoning_client',
    'AsyncOpenRouterProvider',
    'OllamaProvider',
]
