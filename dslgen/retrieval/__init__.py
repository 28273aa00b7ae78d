"""Example retrieval: vector search, keyword overlap and BM25 fallback."""

from dslgen.retrieval.base import BaseRetriever, RetrievedExample
from dslgen.retrieval.embedding import EmbeddingProvider, create_embedding_provider
from dslgen.retrieval.vector_store import VectorStore, InMemoryVectorStore
from dslgen.retrieval.keyword import KeywordRetriever
from dslgen.retrieval.hybrid import HybridRetriever

__all__ = [
    "BaseRetriever",
    "RetrievedExample",
    "EmbeddingProvider",
    "create_embedding_provider",
    "VectorStore",
    "InMemoryVectorStore",
    "KeywordRetriever",
    "HybridRetriever",
]
