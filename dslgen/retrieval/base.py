"""Base classes for example retrieval."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

ExampleSource = Literal["hybrid", "vector", "keyword"]


@dataclass(frozen=True)
class RetrievedExample:
    """A single retrieved (prompt, code) example with its scores."""

    id: str
    prompt_text: str
    code_text: str
    similarity: float
    keyword_score: float
    combined_score: float
    source: ExampleSource = "hybrid"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "prompt_text": self.prompt_text,
            "code_text": self.code_text,
            "similarity": self.similarity,
            "keyword_score": self.keyword_score,
            "combined_score": self.combined_score,
            "source": self.source,
        }


def extract_keywords(query: str) -> list[str]:
    """
    Split a query into case-folded keywords longer than three characters.

    Args:
        query: Query text

    Returns:
        Keywords in query order, duplicates kept
    """
    return [word for word in query.lower().split() if len(word) > 3]


def keyword_overlap(keywords: list[str], text: str) -> float:
    """
    Fraction of keywords that occur as substrings of text.

    Args:
        keywords: Output of extract_keywords
        text: Candidate text

    Returns:
        Score in [0, 1], 0 when there are no keywords
    """
    if not keywords:
        return 0.0
    haystack = text.lower()
    matched = sum(1 for keyword in keywords if keyword in haystack)
    return matched / len(keywords)


class BaseRetriever(ABC):
    """Abstract base class for example retrievers."""

    def __init__(self, name: str = "base"):
        self.name = name

    @abstractmethod
    async def retrieve(
        self,
        query: str,
        dialect: str,
        k: int = 3,
        request_id: str | None = None,
    ) -> list[RetrievedExample]:
        """
        Retrieve examples relevant to a query.

        Args:
            query: Natural-language request
            dialect: Dialect identifier the examples must belong to
            k: Maximum number of examples
            request_id: Correlation key for trace records

        Returns:
            Examples ordered by combined_score descending
        """
        pass
