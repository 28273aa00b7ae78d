"""Anthropic Messages API provider over raw server-sent events."""

import json
import logging
import os
from typing import Any, AsyncIterator

import httpx

from dslgen.exceptions import ProviderError
from dslgen.generation.base import CallOptions, LLMProvider
from dslgen.generation.events import CompleteEvent, ContentEvent, ErrorEvent, StreamEvent, UsageEvent

logger = logging.getLogger(__name__)

ANTHROPIC_API_BASE = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicStreamParser:
    """
    Incremental parser for Anthropic SSE framing.

    Keeps the trailing partial line between feeds. Usage counts in
    ``message_start`` and ``message_delta`` are cumulative for the message,
    so only the increase over what was already reported is emitted.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._stop_reason: str | None = None
        self._input_tokens = 0
        self._output_tokens = 0

    def feed(self, text: str) -> list[StreamEvent]:
        """
        Parse a chunk of the response body.

        Args:
            text: Raw text as received

        Returns:
            Events for every complete line in the buffer
        """
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        events = []
        for line in lines:
            event = self._parse_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[StreamEvent]:
        """Parse whatever remains in the buffer at end of stream."""
        remainder, self._buffer = self._buffer, ""
        event = self._parse_line(remainder.rstrip("\r"))
        return [event] if event is not None else []

    def _parse_line(self, line: str) -> StreamEvent | None:
        if not line.startswith("data:"):
            return None

        data = line[5:].strip()
        if data == "[DONE]":
            return CompleteEvent(stop_reason=self._stop_reason)

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse SSE data: {data[:200]}")
            return None

        event_type = parsed.get("type")

        if event_type == "content_block_delta":
            text = (parsed.get("delta") or {}).get("text") or ""
            return ContentEvent(text=text) if text else None

        if event_type == "message_start":
            usage = (parsed.get("message") or {}).get("usage")
            return self._usage_increment(usage) if usage else None

        if event_type == "message_delta":
            delta = parsed.get("delta") or {}
            if delta.get("stop_reason"):
                self._stop_reason = delta["stop_reason"]
            usage = parsed.get("usage")
            return self._usage_increment(usage) if usage else None

        if event_type == "message_stop":
            return CompleteEvent(stop_reason=self._stop_reason)

        if event_type == "error":
            message = (parsed.get("error") or {}).get("message") or "Unknown error"
            return ErrorEvent(message=message)

        return None

    def _usage_increment(self, usage: dict[str, Any]) -> UsageEvent | None:
        input_tokens = max(usage.get("input_tokens") or 0, self._input_tokens)
        output_tokens = max(usage.get("output_tokens") or 0, self._output_tokens)

        event = UsageEvent(
            input_tokens=input_tokens - self._input_tokens,
            output_tokens=output_tokens - self._output_tokens,
        )
        self._input_tokens, self._output_tokens = input_tokens, output_tokens

        if event.input_tokens or event.output_tokens:
            return event
        return None


class AnthropicProvider(LLMProvider):
    """
    Anthropic provider streaming from ``/v1/messages``.

    A fresh AsyncClient is opened per call.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Anthropic provider.

        Args:
            model: Default model name
            api_key: API key (defaults to ANTHROPIC_API_KEY env var)
            api_base: API base URL
            timeout: Read timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        super().__init__(model)

        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError("Anthropic API key required. Set ANTHROPIC_API_KEY or pass api_key.")

        self._api_base = (api_base or ANTHROPIC_API_BASE).rstrip("/")
        self._timeout = timeout
        self._transport = transport

        logger.info(f"Initialized Anthropic provider: {model}")

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _payload(self, system_prompt: str, messages: list[dict[str, str]], options: CallOptions) -> dict[str, Any]:
        return {
            "model": options.model or self.model,
            "system": system_prompt,
            "messages": messages,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "stream": True,
        }

    async def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        options: CallOptions,
    ) -> AsyncIterator[StreamEvent]:
        parser = AnthropicStreamParser()
        payload = self._payload(system_prompt, messages, options)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream(
                    "POST", f"{self._api_base}/v1/messages", json=payload, headers=self._headers()
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderError(
                            f"HTTP {response.status_code}: {body[:500]}", status_code=response.status_code
                        )

                    async for text in response.aiter_text():
                        for event in parser.feed(text):
                            yield event

            for event in parser.flush():
                yield event

        except httpx.HTTPError as e:
            raise ProviderError(f"Anthropic request failed: {e}") from e
