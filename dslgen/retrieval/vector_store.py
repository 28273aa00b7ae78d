"""Vector store interface and an in-memory numpy implementation."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


class VectorStore(ABC):
    """Abstract nearest-neighbour search over pre-embedded examples."""

    @abstractmethod
    async def nearest(
        self,
        vector: np.ndarray,
        k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Find the records nearest to a vector.

        Args:
            vector: Query embedding
            k: Maximum number of records
            filter: Exact-match field constraints, e.g. ``{"lang": "0002"}``

        Returns:
            Records (all stored fields except the embedding) with an added
            ``distance`` key, nearest first
        """
        pass


class InMemoryVectorStore(VectorStore):
    """
    Cosine-distance search over records held in memory.

    Records come from a pre-built JSONL file where each line carries an
    ``id``, an ``embedding`` list and arbitrary other fields (``lang``,
    ``prompt``, ``code``, ...).
    """

    def __init__(self, records: list[dict[str, Any]] | None = None):
        self._records: list[dict[str, Any]] = []
        self._matrix: np.ndarray | None = None
        if records:
            self.add(records)

    @classmethod
    def from_jsonl(cls, path: str | Path) -> "InMemoryVectorStore":
        """
        Load a store from a JSONL file.

        Args:
            path: File with one JSON record per line

        Returns:
            InMemoryVectorStore
        """
        records = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(json.loads(line))

        logger.info(f"Loaded {len(records)} vectors from {path}")
        return cls(records)

    def add(self, records: list[dict[str, Any]]) -> None:
        """Append records and rebuild the normalized embedding matrix."""
        self._records.extend(records)

        matrix = np.array([r["embedding"] for r in self._records], dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        self._matrix = matrix / norms

    def __len__(self) -> int:
        return len(self._records)

    async def nearest(
        self,
        vector: np.ndarray,
        k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if self._matrix is None or k <= 0:
            return []

        candidates = [
            i
            for i, record in enumerate(self._records)
            if not filter or all(record.get(key) == value for key, value in filter.items())
        ]
        if not candidates:
            return []

        query = np.asarray(vector, dtype=np.float32)
        norm = np.linalg.norm(query)
        if norm > 0:
            query = query / norm

        similarities = self._matrix[candidates] @ query
        # Stable so equal distances keep corpus order
        order = np.argsort(-similarities, kind="stable")[:k]

        results = []
        for position in order:
            record = self._records[candidates[position]]
            result = {key: value for key, value in record.items() if key != "embedding"}
            result["distance"] = float(1.0 - similarities[position])
            results.append(result)

        return results
