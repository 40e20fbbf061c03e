"""Tests for completion providers."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from textback_agent.ai import MockCompletionProvider, get_completion_provider
from textback_agent.ai.groq_client import GroqCompletionProvider
from textback_agent.core.exceptions import CompletionError


def groq_response(text: str | None, total_tokens: int = 42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def groq_client():
    client = MagicMock()
    client.chat.completions.create.return_value = groq_response("Hi! How can we help?")
    return client


@pytest.fixture
def provider(groq_client):
    return GroqCompletionProvider(api_key="test-key", client=groq_client, max_tokens=128)


class TestGroqCompletionProvider:
    @pytest.mark.asyncio
    async def test_prepends_system_prompt(self, provider, groq_client):
        reply = await provider.complete(
            "You are a friendly SMS assistant.",
            [
                {"role": "assistant", "content": "Sorry we missed you!"},
                {"role": "user", "content": "Hi"},
            ],
        )

        assert reply == "Hi! How can we help?"
        kwargs = groq_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {
            "role": "system",
            "content": "You are a friendly SMS assistant.",
        }
        assert kwargs["messages"][-1] == {"role": "user", "content": "Hi"}
        assert kwargs["max_tokens"] == 128
        assert kwargs["model"] == "llama-3.3-70b-versatile"

    @pytest.mark.asyncio
    async def test_empty_content(self, provider, groq_client):
        groq_client.chat.completions.create.return_value = groq_response(None)

        assert await provider.complete("system", []) == ""

    @pytest.mark.asyncio
    async def test_errors_become_completion_errors(self, provider, groq_client):
        groq_client.chat.completions.create.side_effect = RuntimeError("rate limited")

        with pytest.raises(CompletionError, match="rate limited"):
            await provider.complete("system", [{"role": "user", "content": "Hi"}])

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self, provider, groq_client):
        groq_client.chat.completions.create.side_effect = RuntimeError("down")
        for _ in range(5):
            with pytest.raises(CompletionError):
                await provider.complete("system", [])
        groq_client.chat.completions.create.reset_mock()

        with pytest.raises(CompletionError, match="circuit breaker open"):
            await provider.complete("system", [])

        groq_client.chat.completions.create.assert_not_called()


class TestMockCompletionProvider:
    @pytest.mark.asyncio
    async def test_queued_then_default(self):
        provider = MockCompletionProvider(["first"], default="fallback")

        assert await provider.complete("s", []) == "first"
        assert await provider.complete("s", []) == "fallback"
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_queued_exception(self):
        provider = MockCompletionProvider([TimeoutError("slow")])

        with pytest.raises(CompletionError):
            await provider.complete("s", [])


class TestFactory:
    def test_mock_provider(self):
        assert isinstance(get_completion_provider(), MockCompletionProvider)

    def test_groq_without_key_falls_back(self, monkeypatch):
        from textback_agent.config import get_settings

        monkeypatch.setenv("TEXTBACK_AI__PROVIDER", "groq")
        monkeypatch.delenv("TEXTBACK_AI__GROQ__API_KEY", raising=False)
        get_settings.cache_clear()

        assert isinstance(get_completion_provider(), MockCompletionProvider)
