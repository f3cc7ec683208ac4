"""
Vector types shared by the encoder, the index builder and the search backends.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import numpy as np

# Persisted vectors are little-endian float32
VECTOR_DTYPE = np.dtype("<f4")


def as_vector(values) -> np.ndarray:
    """Copy values into a read-only little-endian float32 array."""
    vector = np.array(values, dtype=VECTOR_DTYPE).reshape(-1)
    vector.setflags(write=False)
    return vector


@dataclass(frozen=True, eq=False)
class FeatureVector:
    """Fixed-length numeric encoding of one record."""

    id: str
    """Identifier of the record the vector was derived from"""

    vector: np.ndarray
    """float32 values"""

    encoding: str
    """Encoding scheme/version that produced the vector"""

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Unique identifier for the vector record"""

    vector: Optional[np.ndarray]
    """The vector representation of the content"""

    metadata: Dict[str, object]
    """Additional metadata associated with the vector"""


@dataclass(frozen=True, eq=False)
class IndexEntry:
    """Persisted form of a FeatureVector, stored under ``book:<id>``."""

    id: str
    title: str
    vector: np.ndarray
    encoding: str

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])

    def to_json(self) -> str:
        payload = {
            "id": self.id,
            "title": self.title,
            "dim": self.dimension,
            "encoding": self.encoding,
            "vector": base64.b64encode(np.asarray(self.vector, dtype=VECTOR_DTYPE).tobytes()).decode("ascii"),
        }
        return json.dumps(payload, sort_keys=True)

    @classmethod
    def from_json(cls, raw) -> "IndexEntry":
        """Decode a stored entry.

        Raises:
            ValueError: The payload is malformed or its vector length disagrees with ``dim``
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            payload = json.loads(raw)
            vector = np.frombuffer(base64.b64decode(payload["vector"]), dtype=VECTOR_DTYPE)
            dim = int(payload["dim"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed index entry: {e}") from e

        if vector.shape[0] != dim:
            raise ValueError(f"Index entry {payload.get('id')} declares dim {dim} but holds {vector.shape[0]} values")

        return cls(
            id=str(payload["id"]),
            title=payload.get("title", ""),
            vector=as_vector(vector),
            encoding=payload.get("encoding", ""),
        )


@dataclass
class IndexManifest:
    """Index-level metadata stored under the index name."""

    name: str
    dim: int
    encoding: str
    ids: List[str] = field(default_factory=list)
    metric: str = "cosine"
    built_at: str = ""

    @property
    def count(self) -> int:
        return len(self.ids)

    def to_json(self) -> str:
        return json.dumps({
            "name": self.name,
            "metric": self.metric,
            "dim": self.dim,
            "encoding": self.encoding,
            "count": self.count,
            "ids": self.ids,
            "built_at": self.built_at,
        })

    @classmethod
    def from_json(cls, raw) -> "IndexManifest":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            payload = json.loads(raw)
            return cls(
                name=payload["name"],
                dim=int(payload["dim"]),
                encoding=payload["encoding"],
                ids=[str(i) for i in payload.get("ids", [])],
                metric=payload.get("metric", "cosine"),
                built_at=payload.get("built_at", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed index manifest: {e}") from e


@dataclass(frozen=True)
class Recommendation:
    """One hit of a query."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match"""

    title: str = ""


@dataclass
class QueryResult:
    """Ordered hits, best first; ``count`` is the number of candidates that matched."""

    recommendations: List[Recommendation] = field(default_factory=list)
    count: int = 0

    def __len__(self) -> int:
        return len(self.recommendations)

    def __iter__(self) -> Iterator[Recommendation]:
        return iter(self.recommendations)

    def __getitem__(self, i) -> Recommendation:
        return self.recommendations[i]

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self.recommendations]
