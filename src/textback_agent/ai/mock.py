"""Scripted completion provider for development and tests."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from textback_agent.ai.base import CompletionProvider
from textback_agent.core.exceptions import CompletionError

DEFAULT_MOCK_REPLY = "Thanks for reaching out! What can we help you with today?"


class MockCompletionProvider(CompletionProvider):
    """Returns queued replies in order, then a fixed default.

    A queued ``Exception`` instance is raised instead of returned.
    """

    name = "mock"

    def __init__(self, replies: Iterable[str | Exception] = (), default: str = DEFAULT_MOCK_REPLY):
        self.replies: deque[str | Exception] = deque(replies)
        self.default = default
        self.calls: list[tuple[str, list[dict[str, str]]]] = []

    def queue(self, *replies: str | Exception) -> None:
        self.replies.extend(replies)

    async def complete(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        self.calls.append((system_prompt, list(messages)))
        if not self.replies:
            return self.default
        reply = self.replies.popleft()
        if isinstance(reply, CompletionError):
            raise reply
        if isinstance(reply, Exception):
            raise CompletionError(str(reply), cause=reply)
        return reply
