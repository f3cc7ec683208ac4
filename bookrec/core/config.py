"""
Runtime configuration read from environment variables (and an optional .env file).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Store connection configuration
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")  # redis|sqlite|memory
REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
SQLITE_PATH = os.getenv("SQLITE_PATH", "./data/bookrec.db")

# Encoding configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")

# Search configuration
SEARCH_BACKEND = os.getenv("SEARCH_BACKEND", "bruteforce")  # bruteforce|faiss
INDEX_NAME = "idx:books"
KEY_PREFIX = "book:"

DATA_PATH = os.getenv("DATA_PATH", "./data/books")

# Version string
VERSION = "0.3.0"

VALID_STORE_BACKENDS = ["redis", "sqlite", "memory"]
VALID_EMBED_PROVIDERS = ["hash", "sentence"]
VALID_SEARCH_BACKENDS = ["bruteforce", "faiss"]


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def get_store_backend() -> str:
    return os.getenv("STORE_BACKEND", STORE_BACKEND).lower()


def get_redis_url() -> str:
    """Redis URL; REDIS_URL wins over REDIS_HOST/REDIS_PORT."""
    url = os.getenv("REDIS_URL")
    if url:
        return url
    host = os.getenv("REDIS_HOST", REDIS_HOST)
    port = os.getenv("REDIS_PORT", str(REDIS_PORT))
    return f"redis://{host}:{port}"


def get_sqlite_path() -> str:
    return os.getenv("SQLITE_PATH", SQLITE_PATH)


def get_store_timeout() -> float:
    """Connect/socket timeout in seconds applied at the store boundary."""
    return _env_float("STORE_TIMEOUT_SEC", 5.0)


def get_retry_attempts() -> int:
    return _env_int("STORE_RETRY_ATTEMPTS", 3)


def get_retry_base_delay() -> float:
    return _env_float("STORE_RETRY_BASE_DELAY", 0.1)


def get_embed_provider_name() -> str:
    return os.getenv("EMBED_PROVIDER", EMBED_PROVIDER).lower()


def get_embed_dimension() -> int:
    return _env_int("EMBED_DIM", 384)


def get_embed_model_name() -> str:
    return os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME)


def get_search_backend() -> str:
    return os.getenv("SEARCH_BACKEND", SEARCH_BACKEND).lower()


def get_build_workers() -> int:
    return _env_int("BUILD_WORKERS", 4)


def get_query_workers() -> int:
    return _env_int("QUERY_WORKERS", 1)


def get_top_k() -> int:
    return _env_int("TOP_K", 5)


def get_range_radius() -> float:
    return _env_float("RANGE_RADIUS", 0.5)


def get_data_path() -> str:
    return os.getenv("DATA_PATH", DATA_PATH)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_kv_store(url: str = None):
    """Get the configured key-value store client.

    Args:
        url: Optional Redis URL overriding the environment (redis backend only)
    """
    backend = get_store_backend()
    timeout = get_store_timeout()
    attempts = get_retry_attempts()
    base_delay = get_retry_base_delay()

    if backend == "memory":
        from .kv_store import InMemoryKVStore
        return InMemoryKVStore()
    elif backend == "sqlite":
        from .kv_store import SqliteKVStore
        return SqliteKVStore(get_sqlite_path(), timeout=timeout,
                             max_attempts=attempts, base_delay=base_delay)
    else:
        from .kv_store import RedisKVStore
        return RedisKVStore(url or get_redis_url(), timeout=timeout,
                            max_attempts=attempts, base_delay=base_delay)


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if get_embed_provider_name() == "sentence":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(get_embed_model_name())

    from ..vector.embeddings import HashedFeatureEmbedding
    return HashedFeatureEmbedding(dimension=get_embed_dimension())


def get_vector_store(dimension: int):
    """Get configured search backend for vectors of the given dimension."""
    if get_search_backend() == "faiss":
        from ..vector.faiss_store import FaissVectorStore
        return FaissVectorStore(dimension=dimension)

    from ..vector.index import BruteForceVectorStore
    return BruteForceVectorStore(dimension=dimension, workers=get_query_workers())


def ensure_sqlite_directory():
    """Ensure the SQLite store directory exists."""
    Path(get_sqlite_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if get_store_backend() not in VALID_STORE_BACKENDS:
        issues.append(f"Invalid STORE_BACKEND: {get_store_backend()}")

    if get_embed_provider_name() not in VALID_EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {get_embed_provider_name()}")

    if get_search_backend() not in VALID_SEARCH_BACKENDS:
        issues.append(f"Invalid SEARCH_BACKEND: {get_search_backend()}")

    numeric = [
        ("EMBED_DIM", get_embed_dimension),
        ("BUILD_WORKERS", get_build_workers),
        ("QUERY_WORKERS", get_query_workers),
        ("TOP_K", get_top_k),
        ("STORE_RETRY_ATTEMPTS", get_retry_attempts),
    ]
    for name, getter in numeric:
        try:
            if getter() < 1:
                issues.append(f"{name} must be >= 1")
        except ValueError:
            issues.append(f"{name} must be an integer")

    for name, getter in [("STORE_TIMEOUT_SEC", get_store_timeout),
                         ("RANGE_RADIUS", get_range_radius),
                         ("STORE_RETRY_BASE_DELAY", get_retry_base_delay)]:
        try:
            if getter() < 0:
                issues.append(f"{name} must be >= 0")
        except ValueError:
            issues.append(f"{name} must be a number")

    return issues
