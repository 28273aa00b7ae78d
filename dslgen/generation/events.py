"""Canonical stream events shared by all providers."""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ContentEvent:
    """A text delta."""

    text: str


@dataclass(frozen=True)
class UsageEvent:
    """Token usage to add to a call's total, or the final sum of a whole stream."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal failure; nothing follows it."""

    message: str


@dataclass(frozen=True)
class CompleteEvent:
    """
    End of a provider call, or of the whole stream.

    ``stop_reason`` is the provider's reason when known; ``max_tokens`` and
    ``length`` mean the call was cut off rather than finished.
    """

    stop_reason: str | None = None

    @property
    def is_natural_stop(self) -> bool:
        return self.stop_reason not in ("max_tokens", "length")


StreamEvent = Union[ContentEvent, UsageEvent, ErrorEvent, CompleteEvent]
