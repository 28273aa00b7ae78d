"""BM25 keyword retrieval over the static per-dialect corpus."""

import logging
from pathlib import Path
from typing import Any

from rank_bm25 import BM25Okapi

from dslgen.retrieval.base import BaseRetriever, RetrievedExample, extract_keywords, keyword_overlap
from dslgen.retrieval.corpus import load_training_examples

logger = logging.getLogger(__name__)


class KeywordRetriever(BaseRetriever):
    """
    Okapi BM25 retriever over ``l<dialect>-training-examples.md`` files.

    Used as the fallback when vector search is disabled, fails or returns
    nothing. Each dialect's corpus is parsed and indexed once.
    """

    def __init__(self, corpus_dir: str | Path = "training", k1: float = 1.5, b: float = 0.75):
        """
        Initialize keyword retriever.

        Args:
            corpus_dir: Directory holding the per-dialect corpus files
            k1: BM25 k1 parameter (term frequency saturation)
            b: BM25 b parameter (length normalization)
        """
        super().__init__(name="keyword")
        self.corpus_dir = Path(corpus_dir)
        self.k1 = k1
        self.b = b

        self._examples: dict[str, list[dict[str, Any]]] = {}
        self._indices: dict[str, BM25Okapi | None] = {}

    @staticmethod
    def _document_text(example: dict[str, Any]) -> str:
        return f"{example['prompt']} {example['code']}"

    def _get_index(self, dialect: str) -> tuple[list[dict[str, Any]], BM25Okapi | None]:
        if dialect not in self._examples:
            examples = load_training_examples(self.corpus_dir, dialect)
            self._examples[dialect] = examples
            if examples:
                corpus = [extract_keywords(self._document_text(e)) or [""] for e in examples]
                self._indices[dialect] = BM25Okapi(corpus, k1=self.k1, b=self.b)
            else:
                self._indices[dialect] = None

        return self._examples[dialect], self._indices[dialect]

    async def retrieve(
        self,
        query: str,
        dialect: str,
        k: int = 3,
        request_id: str | None = None,
    ) -> list[RetrievedExample]:
        """
        Rank the dialect's corpus against the query.

        combined_score is the min-max normalized BM25 score; keyword_score is
        the fractional keyword overlap so it is comparable with hybrid results.

        Args:
            query: Query text
            dialect: Dialect identifier
            k: Number of examples to return
            request_id: Unused, kept for interface parity

        Returns:
            Up to k examples, best first
        """
        examples, bm25 = self._get_index(dialect)
        if not examples or bm25 is None:
            return []

        keywords = extract_keywords(query)
        scores = bm25.get_scores(keywords) if keywords else [0.0] * len(examples)

        low, high = min(scores), max(scores)
        spread = high - low

        ranked = sorted(range(len(examples)), key=lambda i: scores[i], reverse=True)[:k]

        results = []
        for i in ranked:
            example = examples[i]
            normalized = (scores[i] - low) / spread if spread > 1e-9 else 0.0
            results.append(
                RetrievedExample(
                    id=example["id"],
                    prompt_text=example["prompt"],
                    code_text=example["code"],
                    similarity=0.0,
                    keyword_score=keyword_overlap(keywords, self._document_text(example)),
                    combined_score=float(normalized),
                    source="keyword",
                )
            )

        return results
