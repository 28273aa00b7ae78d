"""Streaming generation with automatic continuation of truncated output."""

import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator

import httpx

from dslgen.config.defaults import DEFAULT_MAX_CONTINUATIONS, DEFAULT_TERMINATOR
from dslgen.exceptions import ProviderError
from dslgen.generation.base import CallOptions, LLMProvider
from dslgen.generation.events import CompleteEvent, ContentEvent, ErrorEvent, StreamEvent, UsageEvent
from dslgen.generation.result import GenerationResult, TokenUsage
from dslgen.generation.tokens import estimate_usage

logger = logging.getLogger(__name__)

CONTINUATION_PROMPT = "Continue exactly where you left off. Do not repeat any content."

FENCE = "```"


def is_truncated(text: str, terminator: str = DEFAULT_TERMINATOR) -> bool:
    """
    Decide whether accumulated output stopped early.

    An odd number of code fences means a block is still open. Otherwise the
    output is complete only if the dialect terminator appears somewhere.

    Args:
        text: Full accumulated output
        terminator: Dialect statement terminator

    Returns:
        True if the output looks cut off
    """
    if text.count(FENCE) % 2 == 1:
        return True
    return terminator not in text


@dataclass
class StreamStats:
    """Counters filled in while a stream runs."""

    calls: int = 0
    stop_reason: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)


class StreamingGenerator:
    """
    Drives a provider through GENERATING / COMPLETION_CHECK / CONTINUE.

    Each provider call's text is forwarded as it arrives. When the stream
    ends on a natural stop and the accumulated text is not truncated, the
    generator finishes; otherwise the partial output is appended as an
    assistant turn followed by a fixed continuation request. At most
    ``max_continuations + 1`` provider calls are issued, after which the
    best-effort text is returned without error.
    """

    def __init__(
        self,
        provider: LLMProvider,
        max_continuations: int = DEFAULT_MAX_CONTINUATIONS,
        terminator: str = DEFAULT_TERMINATOR,
    ):
        """
        Initialize streaming generator.

        Args:
            provider: LLM provider adapter
            max_continuations: Continuation calls allowed after the first
            terminator: Dialect terminator used by the truncation check
        """
        if max_continuations < 0:
            raise ValueError("max_continuations must be >= 0")

        self.provider = provider
        self.max_continuations = max_continuations
        self.terminator = terminator

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        options: CallOptions,
        stats: StreamStats | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream events for one logical generation.

        Args:
            system_prompt: System prompt
            messages: Conversation to send; not modified
            options: Model and sampling parameters
            stats: Optional counters updated as calls are issued

        Yields:
            ContentEvent per delta, then one summed UsageEvent and one
            CompleteEvent; or a single terminal ErrorEvent
        """
        stats = stats if stats is not None else StreamStats()
        history = list(messages)
        full_text = ""

        while True:
            stats.calls += 1
            call_text = ""
            call_usage = TokenUsage()
            usage_reported = False
            natural_stop = False

            try:
                async for event in self.provider.stream(system_prompt, history, options):
                    if isinstance(event, ContentEvent):
                        call_text += event.text
                        full_text += event.text
                        yield event
                    elif isinstance(event, UsageEvent):
                        call_usage.add(event.input_tokens, event.output_tokens)
                        usage_reported = True
                    elif isinstance(event, CompleteEvent):
                        natural_stop = event.is_natural_stop
                        stats.stop_reason = event.stop_reason
                    elif isinstance(event, ErrorEvent):
                        stats.usage = stats.usage + call_usage
                        yield event
                        return
            except (ProviderError, httpx.HTTPError) as e:
                logger.error(f"Generation call {stats.calls} failed: {e}")
                stats.usage = stats.usage + call_usage
                yield ErrorEvent(message=f"API call failed: {e}")
                return

            if not usage_reported:
                call_usage = TokenUsage(*estimate_usage(system_prompt, history, call_text))
            stats.usage = stats.usage + call_usage

            if natural_stop and not is_truncated(full_text, self.terminator):
                break

            if stats.calls > self.max_continuations:
                logger.warning(
                    f"Continuation limit reached after {stats.calls} call(s); returning best-effort output"
                )
                break

            if not call_text:
                # An empty assistant turn cannot be continued
                logger.warning("Provider returned no content; stopping continuation")
                break

            logger.info(f"Continuing generation (call {stats.calls + 1}/{self.max_continuations + 1})")
            history.append({"role": "assistant", "content": call_text})
            history.append({"role": "user", "content": CONTINUATION_PROMPT})

        yield UsageEvent(input_tokens=stats.usage.input_tokens, output_tokens=stats.usage.output_tokens)
        yield CompleteEvent(stop_reason=stats.stop_reason)

    async def generate_long_code(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        options: CallOptions,
    ) -> GenerationResult:
        """
        Collect a full stream into a GenerationResult.

        Args:
            system_prompt: System prompt
            messages: Conversation to send
            options: Model and sampling parameters

        Returns:
            GenerationResult; ``error`` is set when the stream failed
        """
        start_time = time.time()
        stats = StreamStats()
        content = ""
        error = None

        async for event in self.generate(system_prompt, messages, options, stats):
            if isinstance(event, ContentEvent):
                content += event.text
            elif isinstance(event, ErrorEvent):
                error = event.message

        return GenerationResult(
            content=content,
            usage=stats.usage,
            chunk_count=max(1, stats.calls),
            error=error,
            model=options.model,
            latency_ms=(time.time() - start_time) * 1000,
            stop_reason=stats.stop_reason,
        )
