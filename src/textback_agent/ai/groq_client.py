"""Completion provider using the Groq API.

The Groq SDK client is synchronous; calls run in the default executor so
the event loop stays free. Failures are not retried here: a retried
completion could produce a second reply to one inbound message.
"""

from __future__ import annotations

import asyncio
import functools
import time

from groq import Groq

from textback_agent.ai.base import CompletionProvider
from textback_agent.core.exceptions import CircuitOpenError, CompletionError
from textback_agent.core.log import get_logger
from textback_agent.core.retry import get_circuit_breaker

log = get_logger(__name__)


class GroqCompletionProvider(CompletionProvider):
    """Chat completions on Groq's Llama models."""

    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.7,
        max_tokens: int = 256,
        timeout: float = 15.0,
        client: Groq | None = None,
    ) -> None:
        """Initialize Groq completion provider.

        Args:
            api_key: Groq API key
            model: Model name (llama-3.3-70b-versatile, llama-3.1-8b-instant, etc.)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            timeout: HTTP timeout handed to the SDK
            client: Pre-built client, mainly for tests
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or Groq(api_key=api_key, timeout=timeout, max_retries=0)

        self._circuit_breaker = get_circuit_breaker(
            name="groq_api",
            failure_threshold=5,
            reset_timeout=60.0,
        )

    def _create(self, messages: list[dict[str, str]]) -> str:
        start_time = time.time()
        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        text = response.choices[0].message.content or ""

        log.debug(
            "Groq completion finished",
            elapsed=round(time.time() - start_time, 2),
            response_length=len(text),
            tokens_used=response.usage.total_tokens if response.usage else 0,
        )
        return text

    async def complete(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        chat = [{"role": "system", "content": system_prompt}, *messages]

        log.debug("Requesting Groq completion", num_messages=len(chat), model=self.model)

        try:
            async with self._circuit_breaker:
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, functools.partial(self._create, chat))
        except CircuitOpenError as e:
            raise CompletionError("Groq circuit breaker open", details=e.details, cause=e) from e
        except Exception as e:
            log.error("Groq completion failed", error=f"{type(e).__name__}: {e}")
            raise CompletionError(f"Groq completion failed: {e}", cause=e) from e
