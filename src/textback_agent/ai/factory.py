"""Completion provider factory.

Supported providers:
- groq: Groq cloud inference
- mock: Scripted replies for development and testing
"""

from __future__ import annotations

from textback_agent.ai.base import CompletionProvider
from textback_agent.ai.mock import MockCompletionProvider
from textback_agent.config import get_settings
from textback_agent.core.log import get_logger

log = get_logger(__name__)

_completion_provider: CompletionProvider | None = None


def get_completion_provider() -> CompletionProvider:
    """Get the configured completion provider (singleton)."""
    global _completion_provider

    if _completion_provider is not None:
        return _completion_provider

    settings = get_settings()
    ai = settings.ai
    provider = ai.provider.lower()

    if provider == "groq" and ai.groq.api_key:
        from textback_agent.ai.groq_client import GroqCompletionProvider

        _completion_provider = GroqCompletionProvider(
            api_key=ai.groq.api_key,
            model=ai.groq.model,
            temperature=ai.temperature,
            max_tokens=ai.max_tokens,
            timeout=ai.timeout_seconds,
        )
    else:
        if provider == "groq":
            log.warning("Groq API key not configured, using mock completions")
        elif provider != "mock":
            log.warning("Unknown AI provider, using mock", provider=provider)
        _completion_provider = MockCompletionProvider()

    log.info("Completion provider initialized", provider=_completion_provider.name)
    return _completion_provider


def reset_completion_provider() -> None:
    """Reset the completion provider (for testing)."""
    global _completion_provider
    _completion_provider = None
