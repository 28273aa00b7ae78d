"""Generation result data structures."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TokenUsage:
    """Input and output token counts."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class GenerationResult:
    """
    Result of one generation, across all of its continuation calls.

    ``chunk_count`` is the number of provider calls issued (at least 1).
    """

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    chunk_count: int = 1
    error: str | None = None
    model: str | None = None
    latency_ms: float = 0.0
    stop_reason: str | None = None

    @property
    def is_error(self) -> bool:
        """Check if generation resulted in an error."""
        return self.error is not None

    @property
    def has_output(self) -> bool:
        """Check if any usable text was produced."""
        return bool(self.content.strip())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "content": self.content,
            "usage": self.usage.to_dict(),
            "chunk_count": self.chunk_count,
            "error": self.error,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "stop_reason": self.stop_reason,
        }
