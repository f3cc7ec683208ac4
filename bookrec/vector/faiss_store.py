"""
FAISS-backed search backend.
"""

from typing import Dict, List, Optional

import numpy as np

from .index import RANGE_EPSILON, IVectorStore, normalize, rank_key
from .types import Recommendation, VectorRecord


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore.

    Vectors are L2-normalised so that inner product equals cosine similarity.
    ``hnsw_m=None`` builds an exact flat index; an integer builds an HNSW graph
    with that many neighbours per node (approximate). Hits are re-ranked with
    the shared (score desc, id asc) ordering before they are returned.
    """

    def __init__(self, dimension: int = 384, hnsw_m: Optional[int] = None):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors
            hnsw_m: Neighbours per node for an HNSW index, None for exact search
        """
        try:
            import faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        super().__init__(dimension)
        self.faiss = faiss
        self.hnsw_m = hnsw_m
        self.index = self._new_index()

        # Keep track of record IDs and their corresponding vector indices
        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}  # Vector index -> record ID
        self.next_vector_index = 0

    def _new_index(self):
        if self.hnsw_m:
            return self.faiss.IndexHNSWFlat(self.dimension, self.hnsw_m, self.faiss.METRIC_INNER_PRODUCT)
        # Create a flat index (inner product metric for cosine similarity)
        return self.faiss.IndexFlatIP(self.dimension)

    def __len__(self) -> int:
        return len(self.id_to_vector_index)

    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the FAISS store."""
        self.batch_add([record])

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the FAISS store."""
        vectors_to_add = []
        valid_records = []

        for record in records:
            if record.vector is None:
                continue
            self._check_dimension(record.vector, f"vector for {record.id}")
            vectors_to_add.append(normalize(record.vector).astype(np.float32))
            valid_records.append(record)

        if not vectors_to_add:
            return

        # Convert to numpy array of correct shape and dtype
        batch_vectors = np.vstack(vectors_to_add).astype(np.float32)
        self.index.add(batch_vectors)

        # Store mappings for each record; a replaced id leaves its old row unmapped
        for i, record in enumerate(valid_records):
            old = self.id_to_vector_index.get(record.id)
            if old is not None:
                self.vector_id_map.pop(old, None)
            self.id_to_vector_index[record.id] = self.next_vector_index + i
            self.vector_id_map[self.next_vector_index + i] = record.id
            self._metadata[record.id] = dict(record.metadata)

        self.next_vector_index += len(vectors_to_add)

    def _query_array(self, query_vector) -> np.ndarray:
        return normalize(query_vector).astype(np.float32).reshape(1, -1)

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[Recommendation]:
        """Search for similar vectors and return ranked results."""
        self._check_dimension(query_vector, "query vector")
        if not self.index.ntotal or top_k <= 0:
            return []

        # Over-fetch so stale rows and ties at the cut-off can be re-ranked
        fetch = min(self.index.ntotal, top_k * 2 + (self.index.ntotal - len(self)) + 8)
        scores, indices = self.index.search(self._query_array(query_vector), fetch)

        hits = []
        for score, vector_index in zip(scores[0], indices[0]):
            record_id = self.vector_id_map.get(int(vector_index))
            if record_id is not None:
                hits.append((record_id, float(np.clip(score, -1.0, 1.0))))

        hits.sort(key=rank_key)
        return self._to_recommendations(hits[:top_k])

    def search_range(self, query_vector: np.ndarray, max_distance: float) -> List[Recommendation]:
        self._check_dimension(query_vector, "query vector")
        if not self.index.ntotal:
            return []

        threshold = 1.0 - max_distance
        # FAISS keeps inner products strictly above the threshold; widen by the shared slack
        lims, scores, indices = self.index.range_search(self._query_array(query_vector), threshold - RANGE_EPSILON)

        hits = []
        for score, vector_index in zip(scores[lims[0]:lims[1]], indices[lims[0]:lims[1]]):
            record_id = self.vector_id_map.get(int(vector_index))
            if record_id is not None:
                hits.append((record_id, float(np.clip(score, -1.0, 1.0))))

        hits.sort(key=rank_key)
        return self._to_recommendations(hits)

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        # Create a new index with same parameters
        self.index = self._new_index()
        self.id_to_vector_index.clear()
        self.vector_id_map.clear()
        self._metadata.clear()
        self.next_vector_index = 0
