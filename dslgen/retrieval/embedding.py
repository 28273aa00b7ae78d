"""Query embedding providers."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any

import numpy as np
from openai import AsyncOpenAI

from dslgen.config.defaults import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_LOCAL_EMBEDDING_MODEL,
    MAX_EMBEDDING_CHARS,
)

logger = logging.getLogger(__name__)


def prepare_embedding_input(text: str) -> str:
    """Strip and truncate text to the embedding input limit."""
    return text.strip()[:MAX_EMBEDDING_CHARS]


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """
        Embed a single text.

        Args:
            text: Input text, truncated to 8000 characters

        Returns:
            1-D float32 vector
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model})"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
    ):
        super().__init__(model)

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY or pass api_key.")

        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        logger.info(f"Initialized OpenAI embedding provider: {model}")

    async def embed(self, text: str) -> np.ndarray:
        response = await self._client.embeddings.create(
            model=self.model,
            input=prepare_embedding_input(text),
        )
        return np.array(response.data[0].embedding, dtype=np.float32)


class LocalEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings from a local sentence-transformers model.

    The model is loaded on first use and encoding runs in a worker thread.
    """

    def __init__(self, model: str = DEFAULT_LOCAL_EMBEDDING_MODEL, use_gpu: bool = False):
        super().__init__(model)
        self.use_gpu = use_gpu
        self._model = None

    def _load_model(self) -> None:
        """Lazily load the sentence transformer model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            device = "cuda" if self.use_gpu else "cpu"
            self._model = SentenceTransformer(self.model, device=device)
            logger.info(f"Loaded sentence transformer: {self.model}")

    def _encode(self, text: str) -> np.ndarray:
        self._load_model()
        embedding = self._model.encode([text], normalize_embeddings=True)
        return np.array(embedding[0], dtype=np.float32)

    async def embed(self, text: str) -> np.ndarray:
        return await asyncio.to_thread(self._encode, prepare_embedding_input(text))


def create_embedding_provider(provider_type: str, model: str | None = None, **kwargs: Any) -> EmbeddingProvider:
    """
    Factory function to create an embedding provider.

    Args:
        provider_type: One of "openai", "local"
        model: Model identifier, provider default when omitted
        **kwargs: Provider-specific arguments

    Returns:
        EmbeddingProvider instance
    """
    if provider_type == "openai":
        return OpenAIEmbeddingProvider(model=model or DEFAULT_EMBEDDING_MODEL, **kwargs)
    elif provider_type == "local":
        return LocalEmbeddingProvider(model=model or DEFAULT_LOCAL_EMBEDDING_MODEL, **kwargs)
    else:
        raise ValueError(f"Unknown embedding provider: {provider_type}")
