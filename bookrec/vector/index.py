"""
Search backends over loaded index entries. Similarity is cosine throughout.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import DimensionMismatchError
from .types import Recommendation, VectorRecord

# Slack on the range cut-off; normalised self-similarity can land just below 1.0
RANGE_EPSILON = 1e-6


def rank_key(item: Tuple[str, float]):
    """Sort key: descending score, then ascending identifier."""
    record_id, score = item
    return (-score, record_id)


def normalize(vector) -> np.ndarray:
    """L2-normalise in float64; zero vectors stay zero."""
    vector = np.asarray(vector, dtype=np.float64).reshape(-1)
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


class IVectorStore(ABC):
    """Abstract interface for vector search backends."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self._metadata: Dict[str, Dict[str, object]] = {}

    def _check_dimension(self, vector, context: str) -> None:
        length = int(np.asarray(vector).reshape(-1).shape[0])
        if length != self.dimension:
            raise DimensionMismatchError(self.dimension, length, context)

    def _to_recommendations(self, scored: Sequence[Tuple[str, float]]) -> List[Recommendation]:
        return [
            Recommendation(id=record_id, score=float(score),
                           title=str(self._metadata.get(record_id, {}).get("title", "")))
            for record_id, score in scored
        ]

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        pass

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[Recommendation]:
        """Return the top_k most similar records, best first, ties by ascending id."""
        pass

    @abstractmethod
    def search_range(self, query_vector: np.ndarray, max_distance: float) -> List[Recommendation]:
        """Return every record with cosine distance <= max_distance, best first."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class BruteForceVectorStore(IVectorStore):
    """Exact cosine scan over every stored vector.

    With ``workers > 1`` the scan is split into row chunks scored on a thread
    pool; each chunk yields its local top-k and the chunks are merged with the
    same ordering, so results do not depend on scheduling.
    """

    def __init__(self, dimension: int, workers: int = 1, min_chunk_size: int = 1024):
        super().__init__(dimension)
        self.workers = max(1, workers)
        self.min_chunk_size = min_chunk_size
        self._ids: List[str] = []
        self._positions: Dict[str, int] = {}
        self._rows: List[np.ndarray] = []
        self._matrix: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        if record.vector is None:
            return
        self._check_dimension(record.vector, f"vector for {record.id}")

        normalized = normalize(record.vector)
        if record.id in self._positions:
            # Update existing record in place
            self._rows[self._positions[record.id]] = normalized
        else:
            self._positions[record.id] = len(self._ids)
            self._ids.append(record.id)
            self._rows.append(normalized)

        self._metadata[record.id] = dict(record.metadata)
        self._matrix = None

    def _scores(self, query_vector) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.vstack(self._rows)
        scores = self._matrix @ normalize(query_vector)
        return np.clip(scores, -1.0, 1.0)

    def _chunk_top_k(self, scores: np.ndarray, start: int, stop: int, top_k: int) -> List[Tuple[str, float]]:
        chunk = [(self._ids[i], float(scores[i])) for i in range(start, stop)]
        chunk.sort(key=rank_key)
        return chunk[:top_k]

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[Recommendation]:
        """Search for similar vectors and return ranked results."""
        self._check_dimension(query_vector, "query vector")
        if not self._ids or top_k <= 0:
            return []

        scores = self._scores(query_vector)
        n = len(self._ids)

        if self.workers == 1 or n < 2 * self.min_chunk_size:
            return self._to_recommendations(self._chunk_top_k(scores, 0, n, top_k))

        chunk_size = max(self.min_chunk_size, -(-n // self.workers))
        bounds = [(start, min(start + chunk_size, n)) for start in range(0, n, chunk_size)]
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(self._chunk_top_k, scores, start, stop, top_k) for start, stop in bounds]
            partials = [future.result() for future in futures]

        # Top-k reduction across chunks
        merged = [item for partial in partials for item in partial]
        merged.sort(key=rank_key)
        return self._to_recommendations(merged[:top_k])

    def search_range(self, query_vector: np.ndarray, max_distance: float) -> List[Recommendation]:
        self._check_dimension(query_vector, "query vector")
        if not self._ids:
            return []

        scores = self._scores(query_vector)
        threshold = 1.0 - max_distance
        hits = [(self._ids[i], float(s)) for i, s in enumerate(scores) if s >= threshold - RANGE_EPSILON]
        hits.sort(key=rank_key)
        return self._to_recommendations(hits)

    def clear(self) -> None:
        """Clear all records from the store."""
        self._ids.clear()
        self._positions.clear()
        self._rows.clear()
        self._metadata.clear()
        self._matrix = None
