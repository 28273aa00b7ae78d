"""Hybrid retrieval blending vector similarity with keyword overlap."""

import asyncio
import logging
import time
from typing import Any

from dslgen.pipeline.trace import TraceLogger
from dslgen.retrieval.base import BaseRetriever, RetrievedExample, extract_keywords, keyword_overlap
from dslgen.retrieval.corpus import create_embedding_text
from dslgen.retrieval.embedding import EmbeddingProvider
from dslgen.retrieval.keyword import KeywordRetriever
from dslgen.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


class HybridRetriever(BaseRetriever):
    """
    Retriever that ranks vector-search candidates by a weighted blend of
    cosine similarity and keyword overlap.

    Falls back to the keyword retriever when vector search is disabled,
    fails, times out or finds nothing. Never raises.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider | None,
        vector_store: VectorStore | None,
        keyword_retriever: KeywordRetriever | None = None,
        vector_weight: float = 0.7,
        timeout_s: float = 5.0,
        enable_vector_search: bool = True,
        enable_hybrid_search: bool = True,
        trace: TraceLogger | None = None,
    ):
        """
        Initialize hybrid retriever.

        Args:
            embedder: Query embedding provider
            vector_store: Pre-embedded example store
            keyword_retriever: Fallback retriever over the static corpus
            vector_weight: Weight of vector similarity in the combined score
            timeout_s: Bound on embedding plus vector search
            enable_vector_search: Use vector search at all
            enable_hybrid_search: Blend keyword overlap into the ranking
            trace: Trace logger for stage records
        """
        super().__init__(name="hybrid")

        if not 0.0 <= vector_weight <= 1.0:
            raise ValueError(f"vector_weight must be in [0, 1], got {vector_weight}")

        self.embedder = embedder
        self.vector_store = vector_store
        self.keyword_retriever = keyword_retriever
        self.vector_weight = vector_weight
        self.timeout_s = timeout_s
        self.enable_vector_search = enable_vector_search
        self.enable_hybrid_search = enable_hybrid_search
        self.trace = trace or TraceLogger()

    def _score(self, candidates: list[dict[str, Any]], query: str, k: int) -> list[RetrievedExample]:
        keywords = extract_keywords(query)
        scored = []

        for doc in candidates:
            similarity = min(1.0, max(0.0, 1.0 - float(doc.get("distance", 1.0))))

            if self.enable_hybrid_search:
                kw_score = keyword_overlap(keywords, create_embedding_text(doc))
                combined = similarity * self.vector_weight + kw_score * (1 - self.vector_weight)
                source = "hybrid"
            else:
                kw_score = 0.0
                combined = similarity
                source = "vector"

            scored.append(
                RetrievedExample(
                    id=str(doc.get("id", "")),
                    prompt_text=doc.get("prompt") or doc.get("task") or "",
                    code_text=doc.get("code") or doc.get("src") or "",
                    similarity=similarity,
                    keyword_score=kw_score,
                    combined_score=combined,
                    source=source,
                )
            )

        # sorted() is stable, so ties keep vector-search order
        return sorted(scored, key=lambda e: e.combined_score, reverse=True)[:k]

    async def _vector_candidates(self, query: str, dialect: str, limit: int) -> list[dict[str, Any]]:
        vector = await self.embedder.embed(query)
        return await self.vector_store.nearest(vector, limit, filter={"lang": dialect})

    async def retrieve(
        self,
        query: str,
        dialect: str,
        k: int = 3,
        request_id: str | None = None,
    ) -> list[RetrievedExample]:
        """
        Retrieve examples for a query.

        Args:
            query: Natural-language request
            dialect: Dialect identifier
            k: Number of examples to return
            request_id: Correlation key for trace records

        Returns:
            Up to k examples, combined_score descending; empty on total failure
        """
        start_time = time.time()
        mode = "hybrid" if self.enable_hybrid_search else "vector"

        self.trace.log(request_id, "retrieval.start", query=query[:100], dialect=dialect, k=k, mode=mode)

        use_vector = self.enable_vector_search and self.embedder is not None and self.vector_store is not None

        if use_vector:
            try:
                candidates = await asyncio.wait_for(
                    self._vector_candidates(query, dialect, k * 2), timeout=self.timeout_s
                )
                results = self._score(candidates, query, k)

                if results:
                    self.trace.log(
                        request_id,
                        "retrieval.result",
                        mode=mode,
                        dialect=dialect,
                        result_count=len(results),
                        ids=[r.id for r in results],
                        scores=[
                            {
                                "similarity": r.similarity,
                                "keyword_score": r.keyword_score,
                                "combined_score": r.combined_score,
                            }
                            for r in results
                        ],
                        latency_ms=(time.time() - start_time) * 1000,
                    )
                    return results

                reason = "no vector results"
            except asyncio.TimeoutError:
                reason = f"vector search timed out after {self.timeout_s}s"
            except Exception as e:
                reason = f"vector search failed: {e}"

            logger.warning(f"Falling back to keyword search for L{dialect}: {reason}")
        else:
            reason = "vector search disabled"

        self.trace.log(request_id, "retrieval.fallback", reason=reason, mode="keyword")

        return await self._keyword_fallback(query, dialect, k, request_id, start_time)

    async def _keyword_fallback(
        self,
        query: str,
        dialect: str,
        k: int,
        request_id: str | None,
        start_time: float,
    ) -> list[RetrievedExample]:
        if self.keyword_retriever is None:
            return []

        try:
            results = await self.keyword_retriever.retrieve(query, dialect, k, request_id)
        except Exception as e:
            logger.error(f"Keyword retrieval failed for L{dialect}: {e}")
            self.trace.log(request_id, "retrieval.error", error=str(e))
            return []

        self.trace.log(
            request_id,
            "retrieval.result",
            mode="keyword",
            dialect=dialect,
            result_count=len(results),
            ids=[r.id for r in results],
            scores=[{"keyword_score": r.keyword_score, "combined_score": r.combined_score} for r in results],
            latency_ms=(time.time() - start_time) * 1000,
        )
        return results
