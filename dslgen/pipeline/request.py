"""Generation request data structures."""

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ConversationSummary:
    """Summary of earlier turns in a multi-turn conversation."""

    turn_count: int
    previous_requests: tuple[str, ...] = ()
    previous_outputs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn_count": self.turn_count,
            "previous_requests": list(self.previous_requests),
            "previous_outputs": list(self.previous_outputs),
        }


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request overrides for the first generation attempt."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass(frozen=True)
class GenerationRequest:
    """
    One natural-language request for dialect code.

    Immutable for the lifetime of a pipeline execution. ``request_id`` is
    the correlation key for trace records, usage rows and errors.
    """

    user_prompt: str
    dialect: str
    current_code: str | None = None
    conversation_summary: ConversationSummary | None = None
    options: GenerationOptions = field(default_factory=GenerationOptions)
    account_id: str | None = None
    auth_token: str | None = None
    plan: str | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not self.user_prompt or not self.user_prompt.strip():
            raise ValueError("user_prompt must not be empty")
        if not self.dialect:
            raise ValueError("dialect must not be empty")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging. The auth token is never included."""
        return {
            "request_id": self.request_id,
            "user_prompt": self.user_prompt,
            "dialect": self.dialect,
            "has_current_code": self.current_code is not None,
            "conversation_summary": (
                self.conversation_summary.to_dict() if self.conversation_summary else None
            ),
            "options": {
                "model": self.options.model,
                "temperature": self.options.temperature,
                "max_tokens": self.options.max_tokens,
            },
            "account_id": self.account_id,
            "plan": self.plan,
        }
