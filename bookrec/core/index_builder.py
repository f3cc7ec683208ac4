"""
Index builder - persists encoded book vectors into the key-value store.

Layout in the store:
  book:<id>   one IndexEntry per record (JSON, vector as base64 float32 LE)
  idx:books   IndexManifest listing the ids reachable from the index

Entries are written first and the manifest last, so a build that dies midway
leaves the previous manifest in charge.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .config import INDEX_NAME, KEY_PREFIX
from .errors import BookRecError, DimensionMismatchError
from .kv_store import IKVStore
from .schema import Book
from ..util.logging import logger
from ..vector.embeddings import FeatureEncoder
from ..vector.types import FeatureVector, IndexEntry, IndexManifest


def entry_key(record_id: str) -> str:
    """Store key for a record id (accepts ids already carrying the prefix)."""
    if record_id.startswith(KEY_PREFIX):
        return record_id
    return f"{KEY_PREFIX}{record_id}"


def record_id_of(key: str) -> str:
    """Record id for a store key (ids without the prefix are returned unchanged)."""
    if key.startswith(KEY_PREFIX):
        return key[len(KEY_PREFIX):]
    return key


@dataclass
class BuildReport:
    """Outcome of a build: counts plus per-entry failures."""
    index_name: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    written: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)
    ids: List[str] = field(default_factory=list)

    def to_dict(self):
        data = {
            "index_name": self.index_name,
            "started_at": self.started_at.isoformat(),
            "written": self.written,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "errors": self.errors,
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


class IndexBuilder:
    """Writes IndexEntries and the manifest for one index."""

    def __init__(self, store: IKVStore, dimension: int, encoding: str,
                 index_name: str = INDEX_NAME, workers: int = 4):
        """
        Args:
            store: Key-value store receiving the entries
            dimension: Dimension every vector must have
            encoding: Encoding version recorded in the manifest
            index_name: Manifest key
            workers: Size of the write pool (1 writes sequentially)
        """
        self.store = store
        self.dimension = dimension
        self.encoding = encoding
        self.index_name = index_name
        self.workers = max(1, workers)

    def _write_entry(self, book: Book, vector: FeatureVector, cancel: Optional[threading.Event]) -> Optional[str]:
        """Persist one entry. Returns the id, or None when skipped by cancellation."""
        if cancel is not None and cancel.is_set():
            return None

        if vector.dimension != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.dimension, f"vector for {book.id}")
        if vector.encoding != self.encoding:
            raise BookRecError(f"vector for {book.id} uses encoding {vector.encoding}, index uses {self.encoding}")

        entry = IndexEntry(id=book.id, title=book.title, vector=vector.vector, encoding=vector.encoding)
        self.store.set(entry_key(book.id), entry.to_json())
        logger.debug(f"Wrote index entry {entry_key(book.id)}")
        return book.id

    def build(self, pairs: Sequence[Tuple[Book, FeatureVector]],
              cancel: Optional[threading.Event] = None) -> BuildReport:
        """Persist an IndexEntry for each (record, vector) pair, then the manifest.

        A failing entry is logged, counted and left out of the manifest; the
        remaining entries are still written. Every write has completed when
        this returns.

        Args:
            pairs: Records with their encoded vectors
            cancel: Optional event; once set, pending writes are skipped and the
                manifest is not written

        Returns:
            BuildReport with ``written`` equal to the number of entries persisted

        Raises:
            StoreConnectionError: The store cannot be reached at all
        """
        report = BuildReport(index_name=self.index_name, started_at=datetime.now(timezone.utc))
        start = time.perf_counter()

        # Fail fast when there is no store to talk to
        self.store.ping()

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [
                (book, executor.submit(self._write_entry, book, vector, cancel))
                for book, vector in pairs
            ]
            for book, future in futures:
                try:
                    written_id = future.result()
                except Exception as e:
                    report.failed += 1
                    report.errors.append(f"{entry_key(book.id)}: {e}")
                    logger.log_store_operation("set", entry_key(book.id), "failed", {"error": str(e)[:100]})
                    continue
                if written_id is None:
                    report.skipped += 1
                else:
                    report.written += 1
                    report.ids.append(written_id)

        if cancel is not None and cancel.is_set():
            report.cancelled = True
        else:
            self._write_manifest(report.ids)

        report.completed_at = datetime.now(timezone.utc)
        logger.log_build_summary(self.index_name, report.written, report.failed,
                                 (time.perf_counter() - start) * 1000, report.cancelled)
        if report.errors:
            logger.log_build_errors(report.errors)
        return report

    def _write_manifest(self, ids: List[str]) -> None:
        manifest = IndexManifest(
            name=self.index_name,
            dim=self.dimension,
            encoding=self.encoding,
            ids=list(ids),
            built_at=datetime.now(timezone.utc).isoformat(),
        )
        # Manifest write failures propagate to the caller
        self.store.set(self.index_name, manifest.to_json())
        logger.log_store_operation("set", self.index_name, "success", {"count": manifest.count})


def build_from_records(books: Sequence[Book], encoder: FeatureEncoder, store: IKVStore,
                       index_name: str = INDEX_NAME, workers: int = 4,
                       cancel: Optional[threading.Event] = None) -> BuildReport:
    """Encode records and build the index; encoding failures count as failed entries."""
    pairs = []
    encode_errors = []
    for book in books:
        try:
            pairs.append((book, encoder.encode(book)))
        except BookRecError as e:
            encode_errors.append(f"{entry_key(book.id)}: {e}")

    builder = IndexBuilder(store, dimension=encoder.dimension, encoding=encoder.version,
                           index_name=index_name, workers=workers)
    report = builder.build(pairs, cancel=cancel)

    if encode_errors:
        for error in encode_errors:
            logger.error(f"Encoding failed: {error}")
        report.failed += len(encode_errors)
        report.errors = encode_errors + report.errors
    return report
