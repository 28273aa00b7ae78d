"""Streaming LLM generation and output post-processing."""

from dslgen.generation.events import CompleteEvent, ContentEvent, ErrorEvent, StreamEvent, UsageEvent
from dslgen.generation.base import CallOptions, LLMProvider, create_provider
from dslgen.generation.result import GenerationResult, TokenUsage
from dslgen.generation.anthropic_backend import AnthropicProvider, AnthropicStreamParser
from dslgen.generation.openai_backend import OpenAIProvider
from dslgen.generation.streaming import StreamingGenerator, is_truncated
from dslgen.generation.postprocess import process_generated_code, extract_code_blocks

__all__ = [
    "CompleteEvent",
    "ContentEvent",
    "ErrorEvent",
    "StreamEvent",
    "UsageEvent",
    "CallOptions",
    "LLMProvider",
    "create_provider",
    "GenerationResult",
    "TokenUsage",
    "AnthropicProvider",
    "AnthropicStreamParser",
    "OpenAIProvider",
    "StreamingGenerator",
    "is_truncated",
    "process_generated_code",
    "extract_code_blocks",
]
