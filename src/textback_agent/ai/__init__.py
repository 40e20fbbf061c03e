"""AI completion providers."""

from textback_agent.ai.base import CompletionProvider
from textback_agent.ai.factory import get_completion_provider, reset_completion_provider
from textback_agent.ai.mock import MockCompletionProvider

__all__ = [
    "CompletionProvider",
    "MockCompletionProvider",
    "get_completion_provider",
    "reset_completion_provider",
]
