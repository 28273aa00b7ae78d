"""Base LLM provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator

from dslgen.generation.events import StreamEvent


@dataclass(frozen=True)
class CallOptions:
    """Sampling parameters for one generation."""

    model: str
    temperature: float = 0.2
    max_tokens: int = 4096


class LLMProvider(ABC):
    """
    Abstract base class for streaming LLM providers.

    Each implementation translates its wire framing into the canonical
    stream events.
    """

    def __init__(self, model: str, **kwargs: Any):
        """
        Initialize LLM provider.

        Args:
            model: Default model identifier
            **kwargs: Additional configuration
        """
        self.model = model
        self._config = kwargs

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        options: CallOptions,
    ) -> AsyncIterator[StreamEvent]:
        """
        Issue exactly one streaming call.

        Yields ContentEvent for each text delta, UsageEvent for reported
        usage, and a CompleteEvent when the provider ends the message.
        Protocol-level errors are yielded as ErrorEvent.

        Args:
            system_prompt: System prompt
            messages: Alternating user/assistant messages
            options: Model and sampling parameters

        Raises:
            ProviderError: On transport failure
        """
        pass

    def get_model_info(self) -> dict[str, Any]:
        """
        Get information about the current model.

        Returns:
            Dictionary with model metadata
        """
        return {
            "model": self.model,
            "provider": self.__class__.__name__,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model})"


def create_provider(provider_type: str, model: str, **kwargs: Any) -> LLMProvider:
    """
    Factory function to create an LLM provider.

    Args:
        provider_type: One of "anthropic", "openai"
        model: Default model identifier
        **kwargs: Provider-specific arguments

    Returns:
        LLMProvider instance
    """
    from dslgen.generation.anthropic_backend import AnthropicProvider
    from dslgen.generation.openai_backend import OpenAIProvider

    if provider_type == "anthropic":
        return AnthropicProvider(model=model, **kwargs)
    elif provider_type == "openai":
        return OpenAIProvider(model=model, **kwargs)
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")
