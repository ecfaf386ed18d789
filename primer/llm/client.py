"""
Anthropic LLM client for the curation pipeline.

Thin async wrapper around the Messages API. One `call()` per generation
request: a system prompt (role instructions) plus a single user message
(structured context). The call-level timeout is the only bound on a stuck
request.
"""

import logging
import time
from typing import Any, Dict, Optional

import anthropic

from primer.core.config import get_settings
from primer.core.exceptions import LLMError

logger = logging.getLogger(__name__)

JSON_ONLY_SUFFIX = "\n\nYou must respond with valid JSON only, no other text."


class LLMClient:
    """Async client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        settings = get_settings().anthropic
        self.api_key = api_key if api_key is not None else settings.api_key
        self.model = model or settings.model
        self.timeout = timeout or settings.timeout
        self.max_tokens = max_tokens or settings.max_tokens
        # Client created lazily on first call
        self._client: Optional[anthropic.AsyncAnthropic] = None

    def _ensure_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def call(
        self,
        system: str,
        user: str,
        role: str = "curator",
        max_tokens: Optional[int] = None,
        json_only: bool = True,
    ) -> str:
        """
        Send one request and return the text of the response.

        Args:
            system: Role instructions
            user: Structured context for this request
            role: Label for logging (selection, coherence, framing, ...)
            max_tokens: Override default max tokens
            json_only: Append the JSON-only instruction to the system prompt

        Raises:
            LLMError: On API or transport errors, or an empty response
        """
        client = self._ensure_client()

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "system": system + JSON_ONLY_SUFFIX if json_only else system,
            "messages": [{"role": "user", "content": user}],
        }

        logger.info(f"[LLMClient] Calling {self.model} for role={role}")
        started = time.monotonic()

        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            logger.error(f"[LLMClient] {role} HTTP {e.status_code}: {e.message}")
            raise LLMError(
                f"Generation API error {e.status_code}: {e.message}",
                context={"role": role, "status_code": e.status_code},
            ) from e
        except anthropic.APIError as e:
            logger.error(f"[LLMClient] {role} request failed: {e}")
            raise LLMError(f"Generation request failed: {e}", context={"role": role}) from e

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError("No text in generation response", context={"role": role})

        content = "".join(text_blocks)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[LLMClient] {role} response: {len(content)} chars "
            f"(input_tokens={response.usage.input_tokens}, "
            f"output_tokens={response.usage.output_tokens}, elapsed={elapsed_ms:.0f}ms)"
        )
        return content


# Singleton instance
_llm_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get LLM client singleton."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
