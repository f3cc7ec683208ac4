"""
Query engine - top-K and range recommendations against a persisted index.

The engine reads the manifest and entries from the key-value store, loads them
into a search backend (brute-force cosine by default) once, and answers queries
from that snapshot until refresh() is called.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .config import INDEX_NAME
from .errors import BookRecError, DimensionMismatchError, NotFoundError
from .index_builder import entry_key, record_id_of
from .kv_store import IKVStore
from ..util.logging import logger
from ..vector.embeddings import FeatureEncoder
from ..vector.index import BruteForceVectorStore, IVectorStore
from ..vector.types import IndexEntry, IndexManifest, QueryResult, VectorRecord

QueryTarget = Union[str, Sequence[float], np.ndarray]


class QueryEngine:
    """Answers nearest-neighbour queries against one index in the store."""

    def __init__(self, store: IKVStore, index_name: str = INDEX_NAME,
                 encoder: Optional[FeatureEncoder] = None,
                 vector_store_factory: Optional[Callable[[int], IVectorStore]] = None,
                 workers: int = 1):
        """
        Args:
            store: Key-value store holding the index
            index_name: Manifest key
            encoder: Needed only for free-text queries
            vector_store_factory: Builds the search backend for a dimension
            workers: Threads used to fetch entries from the store
        """
        self.store = store
        self.index_name = index_name
        self.encoder = encoder
        self.vector_store_factory = vector_store_factory or (lambda dim: BruteForceVectorStore(dimension=dim))
        self.workers = max(1, workers)
        self._manifest: Optional[IndexManifest] = None
        self._backend: Optional[IVectorStore] = None

    def refresh(self) -> None:
        """Drop the cached manifest and vectors; the next query reloads them."""
        self._manifest = None
        self._backend = None

    @property
    def manifest(self) -> IndexManifest:
        if self._manifest is None:
            raw = self.store.get(self.index_name)
            if raw is None:
                raise NotFoundError(f"Index {self.index_name} not found; build it first (--load true)")
            try:
                self._manifest = IndexManifest.from_json(raw)
            except ValueError as e:
                raise NotFoundError(f"Index {self.index_name} is unreadable: {e}") from e
        return self._manifest

    def _fetch_entry(self, record_id: str) -> Optional[IndexEntry]:
        raw = self.store.get(entry_key(record_id))
        if raw is None:
            return None
        try:
            entry = IndexEntry.from_json(raw)
        except ValueError as e:
            raise NotFoundError(f"Entry {entry_key(record_id)} is unreadable: {e}") from e

        if entry.dimension != self.manifest.dim:
            raise DimensionMismatchError(self.manifest.dim, entry.dimension, f"entry {entry_key(record_id)}")
        return entry

    def _load_backend(self) -> IVectorStore:
        if self._backend is not None:
            return self._backend

        manifest = self.manifest
        if manifest.count == 0:
            raise NotFoundError(f"Index {self.index_name} is empty")

        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                entries = list(executor.map(self._fetch_entry, manifest.ids))
        else:
            entries = [self._fetch_entry(record_id) for record_id in manifest.ids]

        backend = self.vector_store_factory(manifest.dim)
        records = []
        missing = []
        for record_id, entry in zip(manifest.ids, entries):
            if entry is None:
                missing.append(record_id)
                continue
            records.append(VectorRecord(id=entry.id, vector=entry.vector, metadata={"title": entry.title}))
        backend.batch_add(records)

        if missing:
            logger.warning(f"Index {self.index_name} lists {len(missing)} ids with no stored entry: {missing[:5]}")

        self._backend = backend
        return backend

    def _resolve(self, target: QueryTarget) -> np.ndarray:
        """Turn an identifier or a raw vector into the query vector."""
        manifest = self.manifest

        if isinstance(target, str):
            # Entries left behind by an earlier build are not part of this index
            if record_id_of(target) not in manifest.ids:
                raise NotFoundError(f"Book {entry_key(target)} not found")
            entry = self._fetch_entry(target)
            if entry is None:
                raise NotFoundError(f"Book {entry_key(target)} not found")
            return entry.vector

        vector = np.asarray(target, dtype=np.float64)
        if vector.ndim != 1:
            raise ValueError("Query vector must be one-dimensional")
        if vector.shape[0] != manifest.dim:
            raise DimensionMismatchError(manifest.dim, int(vector.shape[0]))
        return vector

    @staticmethod
    def _describe(target: QueryTarget) -> str:
        if isinstance(target, str):
            return entry_key(target)
        return f"vector[{len(target)}]"

    def query(self, target: QueryTarget, k: int = 5) -> QueryResult:
        """Top-k most similar items to an identifier or a raw vector.

        The queried item itself is included, so an identifier query ranks that
        item first with score 1.0. The result holds min(k, index size) items,
        so k=0 gives an empty result.

        Raises:
            NotFoundError: The index or the identifier is absent
            DimensionMismatchError: The vector length differs from the index dimension
        """
        if k < 0:
            raise ValueError("k must be >= 0")

        query_vector = self._resolve(target)
        backend = self._load_backend()
        recommendations = backend.search(query_vector, top_k=k)

        logger.log_query("knn", self._describe(target), k, len(recommendations))
        return QueryResult(recommendations=recommendations, count=len(recommendations))

    def query_text(self, text: str, k: int = 5) -> QueryResult:
        """Top-k items for free text, encoded with the configured encoder."""
        if self.encoder is None:
            raise BookRecError("Free-text queries need an encoder")

        manifest = self.manifest
        if self.encoder.dimension != manifest.dim:
            raise DimensionMismatchError(manifest.dim, self.encoder.dimension, "encoder output")
        if self.encoder.version != manifest.encoding:
            raise BookRecError(
                f"Encoder {self.encoder.version} does not match index encoding {manifest.encoding}"
            )
        return self.query(self.encoder.encode_text(text), k=k)

    def query_range(self, target: QueryTarget, radius: float, limit: int = 5) -> QueryResult:
        """Items within cosine distance ``radius`` (1 - similarity), best first.

        ``count`` reports every match; ``recommendations`` holds at most ``limit``.
        """
        if radius < 0:
            raise ValueError("radius must be >= 0")

        query_vector = self._resolve(target)
        backend = self._load_backend()
        hits = backend.search_range(query_vector, radius)

        logger.log_query("range", self._describe(target), limit, min(len(hits), limit))
        return QueryResult(recommendations=hits[:limit], count=len(hits))

    def contains(self, record_id: str) -> bool:
        """Whether record_id belongs to the index and its entry is stored."""
        if record_id_of(record_id) not in self.manifest.ids:
            return False
        return self.store.exists(entry_key(record_id))

    @property
    def size(self) -> int:
        return len(self._load_backend())

    def ids(self) -> List[str]:
        return list(self.manifest.ids)
