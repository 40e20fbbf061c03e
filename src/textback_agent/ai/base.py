"""AI completion collaborator interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CompletionProvider(ABC):
    """Produces one free-text reply for a conversation.

    ``messages`` is the ordered chat history as
    ``{"role": "user" | "assistant", "content": "..."}`` dicts; the system
    prompt is passed separately.
    """

    name: str = "base"

    @abstractmethod
    async def complete(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        """Return the completion text.

        Raises:
            CompletionError: If the provider cannot produce a reply
        """
