"""
Vector layer - feature encoding and similarity search over persisted book vectors.
"""

# Package initialization for vector module
from .index import IVectorStore, BruteForceVectorStore
from .faiss_store import FaissVectorStore
from .types import FeatureVector, IndexEntry, IndexManifest, QueryResult, Recommendation, VectorRecord
from .embeddings import IEmbeddingProvider, HashedFeatureEmbedding, SentenceTransformerEmbedding, FeatureEncoder

__all__ = [
    'IVectorStore',
    'BruteForceVectorStore',
    'FaissVectorStore',
    'FeatureVector',
    'IndexEntry',
    'IndexManifest',
    'QueryResult',
    'Recommendation',
    'VectorRecord',
    'IEmbeddingProvider',
    'HashedFeatureEmbedding',
    'SentenceTransformerEmbedding',
    'FeatureEncoder',
]
