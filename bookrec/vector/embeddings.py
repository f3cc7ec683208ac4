"""
Embedding providers and the feature encoder that turns book records into vectors.
"""

from abc import ABC, abstractmethod
import hashlib
import re
from typing import List

import numpy as np

from ..core.errors import EncodingError
from ..core.schema import Book
from .types import FeatureVector, as_vector

_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> List[str]:
    """Case-folded word tokens in any script."""
    return _TOKEN_RE.findall(text.casefold())


def _slug(value: str) -> str:
    return "_".join(tokenize(value))


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Identifier of the encoding scheme, recorded with the index."""
        pass

    def embed_book(self, book: Book) -> list[float]:
        """Generate the embedding for a book record (its description by default)."""
        return self.embed_text(book.description)


class HashedFeatureEmbedding(IEmbeddingProvider):
    """Deterministic bag-of-words/bag-of-tags embedding using signed feature hashing.

    Each token is hashed with md5; the first 4 bytes pick a bucket and the next
    byte picks a sign. Author and genres are added as weighted ``author:``/``genre:``
    tags so that books sharing them land close together. The result is
    L2-normalised. No model download, no randomness.
    """

    TAG_WEIGHT = 2.0

    def __init__(self, dimension: int = 384):
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.dimension = dimension

    @property
    def version(self) -> str:
        return "hash-v1"

    def _accumulate(self, vector: np.ndarray, feature: str, weight: float) -> None:
        digest = hashlib.md5(feature.encode("utf-8")).digest()
        bucket = int.from_bytes(digest[:4], "little") % self.dimension
        sign = 1.0 if digest[4] & 1 == 0 else -1.0
        vector[bucket] += sign * weight

    def embed_features(self, features: List[tuple]) -> list[float]:
        """Embed (feature, weight) pairs."""
        vector = np.zeros(self.dimension, dtype=np.float64)
        for feature, weight in features:
            self._accumulate(vector, feature, weight)

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.astype(np.float32).tolist()

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector for free text."""
        return self.embed_features([(token, 1.0) for token in tokenize(text)])

    def embed_book(self, book: Book) -> list[float]:
        features = [(token, 1.0) for token in tokenize(book.description)]
        features.extend((token, 1.0) for token in tokenize(book.title))
        if book.author.strip():
            features.append((f"author:{_slug(book.author)}", self.TAG_WEIGHT))
        features.extend((f"genre:{_slug(g)}", self.TAG_WEIGHT) for g in book.genres if g.strip())
        return self.embed_features(features)

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Uses all-MiniLM-L6-v2 (384 dimensions) by default, embedding the book
    description.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    @property
    def version(self) -> str:
        return f"st:{self.model_name}"

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return np.asarray(embedding, dtype=np.float32).tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = int(self.model.get_sentence_embedding_dimension())
        return self._dimension


class FeatureEncoder:
    """Encodes book records into fixed-dimension feature vectors.

    The dimension and version are fixed for the lifetime of the encoder and are
    written into the index manifest so that queries can check compatibility.
    """

    def __init__(self, provider: IEmbeddingProvider, use_precomputed: bool = False):
        """
        Args:
            provider: Embedding provider producing the vectors
            use_precomputed: Accept a record's own ``embedding`` when its length matches
        """
        self.provider = provider
        self.use_precomputed = use_precomputed
        self.dimension = provider.get_dimension()
        self.version = provider.version

    def encode(self, book: Book) -> FeatureVector:
        """Encode one record.

        Raises:
            EncodingError: The record has no description, or the provider returned
                a vector of the wrong length or an all-zero vector
        """
        if self.use_precomputed and book.embedding and len(book.embedding) == self.dimension:
            return FeatureVector(id=book.id, vector=self._checked(book.embedding, f"book {book.id}"),
                                 encoding=self.version)

        if not book.description.strip():
            raise EncodingError(f"Book {book.id} has no description to encode")

        values = self.provider.embed_book(book)
        if len(values) != self.dimension:
            raise EncodingError(
                f"Provider returned {len(values)} values for book {book.id}, expected {self.dimension}"
            )
        return FeatureVector(id=book.id, vector=self._checked(values, f"book {book.id}"), encoding=self.version)

    def encode_text(self, text: str) -> np.ndarray:
        """Encode free text into the same vector space as the records."""
        if not text.strip():
            raise EncodingError("Query text is empty")
        return self._checked(self.provider.embed_text(text), "query text")

    @staticmethod
    def _checked(values, source: str) -> np.ndarray:
        vector = as_vector(values)
        if not np.any(vector):
            raise EncodingError(f"Encoding of {source} is all zeros; no usable features")
        return vector
