"""Token counting for providers that do not report usage."""

from functools import lru_cache

import tiktoken

DEFAULT_ENCODING = "cl100k_base"


@lru_cache(maxsize=4)
def _get_encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def count_tokens(text: str, encoding: str = DEFAULT_ENCODING) -> int:
    """
    Count tokens in text using tiktoken.

    Args:
        text: Input text
        encoding: tiktoken encoding name

    Returns:
        Token count
    """
    if not text:
        return 0
    return len(_get_encoding(encoding).encode(text))


def estimate_usage(system_prompt: str, messages: list[dict[str, str]], output: str) -> tuple[int, int]:
    """
    Estimate (input, output) tokens of one provider call.

    Args:
        system_prompt: System prompt sent
        messages: Conversation sent
        output: Text received

    Returns:
        Tuple of input and output token estimates
    """
    prompt_text = system_prompt + "".join(m.get("content", "") for m in messages)
    return count_tokens(prompt_text), count_tokens(output)
