"""OpenAI chat completions provider."""

import logging
import os
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

from dslgen.exceptions import ProviderError
from dslgen.generation.base import CallOptions, LLMProvider
from dslgen.generation.events import CompleteEvent, ContentEvent, StreamEvent, UsageEvent

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    OpenAI provider using streamed chat completions.

    Usage arrives in the final chunk via ``stream_options.include_usage``.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: Model name (e.g., "gpt-4o-mini", "gpt-4o")
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            organization: Optional organization ID
            base_url: Optional custom API base URL
            timeout: Request timeout in seconds
            max_retries: Client-level retries before the stream opens
        """
        super().__init__(model)

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY or pass api_key.")

        self._client = AsyncOpenAI(
            api_key=api_key,
            organization=organization,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        logger.info(f"Initialized OpenAI provider with model: {model}")

    async def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        options: CallOptions,
    ) -> AsyncIterator[StreamEvent]:
        chat_messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        chat_messages.extend(messages)

        finish_reason = None

        try:
            response = await self._client.chat.completions.create(
                model=options.model or self.model,
                messages=chat_messages,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )

            async for chunk in response:
                if chunk.usage:
                    yield UsageEvent(
                        input_tokens=chunk.usage.prompt_tokens or 0,
                        output_tokens=chunk.usage.completion_tokens or 0,
                    )
                for choice in chunk.choices:
                    if choice.delta and choice.delta.content:
                        yield ContentEvent(text=choice.delta.content)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason

        except openai.APIStatusError as e:
            raise ProviderError(f"OpenAI HTTP {e.status_code}: {e.message}", status_code=e.status_code) from e
        except openai.APIError as e:
            raise ProviderError(f"OpenAI request failed: {e}") from e

        yield CompleteEvent(stop_reason=finish_reason)
