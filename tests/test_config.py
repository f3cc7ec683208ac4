"""
Environment-driven configuration and provider factories.
"""

import pytest

from bookrec.core import config
from bookrec.core.kv_store import InMemoryKVStore, RedisKVStore, SqliteKVStore
from bookrec.vector.embeddings import HashedFeatureEmbedding, SentenceTransformerEmbedding
from bookrec.vector.index import BruteForceVectorStore

ENV_VARS = [
    "STORE_BACKEND", "REDIS_URL", "REDIS_HOST", "REDIS_PORT", "SQLITE_PATH",
    "STORE_TIMEOUT_SEC", "STORE_RETRY_ATTEMPTS", "STORE_RETRY_BASE_DELAY",
    "EMBED_PROVIDER", "EMBED_DIM", "EMBED_MODEL_NAME", "SEARCH_BACKEND",
    "BUILD_WORKERS", "QUERY_WORKERS", "TOP_K", "RANGE_RADIUS", "DATA_PATH", "DEBUG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    """Test documented defaults with a clean environment."""
    assert config.get_store_backend() == "redis"
    assert config.get_redis_url() == "redis://127.0.0.1:6379"
    assert config.get_embed_dimension() == 384
    assert config.get_top_k() == 5
    assert config.get_range_radius() == 0.5
    assert config.get_build_workers() == 4
    assert config.get_query_workers() == 1
    assert config.get_retry_attempts() == 3
    assert config.debug_enabled() is False
    assert config.validate_config() == []


def test_redis_url_precedence(monkeypatch):
    """Test that REDIS_URL wins over REDIS_HOST and REDIS_PORT."""
    monkeypatch.setenv("REDIS_HOST", "cache")
    monkeypatch.setenv("REDIS_PORT", "6380")
    assert config.get_redis_url() == "redis://cache:6380"

    monkeypatch.setenv("REDIS_URL", "redis://primary:6379/2")
    assert config.get_redis_url() == "redis://primary:6379/2"


def test_kv_store_factory(monkeypatch, tmp_path):
    """Test store selection by STORE_BACKEND."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    assert isinstance(config.get_kv_store(), InMemoryKVStore)

    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "kv.db"))
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "5")
    store = config.get_kv_store()
    assert isinstance(store, SqliteKVStore)
    assert store.max_attempts == 5


def test_redis_factory_uses_url_override(monkeypatch):
    """Test that an explicit URL and the timeout reach the Redis store."""
    created = {}

    class FakeRedisStore(RedisKVStore):
        def __init__(self, url, **kwargs):
            created["url"] = url
            created.update(kwargs)

    monkeypatch.setattr("bookrec.core.kv_store.RedisKVStore", FakeRedisStore)
    monkeypatch.setenv("STORE_TIMEOUT_SEC", "1.5")

    config.get_kv_store("redis://override:6379")

    assert created["url"] == "redis://override:6379"
    assert created["timeout"] == 1.5


def test_embedding_provider_factory(monkeypatch):
    """Test provider selection by EMBED_PROVIDER."""
    monkeypatch.setenv("EMBED_DIM", "64")
    provider = config.get_embedding_provider()
    assert isinstance(provider, HashedFeatureEmbedding)
    assert provider.get_dimension() == 64

    monkeypatch.setenv("EMBED_PROVIDER", "sentence")
    monkeypatch.setenv("EMBED_MODEL_NAME", "paraphrase-MiniLM-L3-v2")
    provider = config.get_embedding_provider()
    assert isinstance(provider, SentenceTransformerEmbedding)
    assert provider.version == "st:paraphrase-MiniLM-L3-v2"


def test_vector_store_factory(monkeypatch):
    """Test that the brute-force backend picks up QUERY_WORKERS."""
    monkeypatch.setenv("QUERY_WORKERS", "3")
    store = config.get_vector_store(8)

    assert isinstance(store, BruteForceVectorStore)
    assert store.dimension == 8
    assert store.workers == 3


def test_vector_store_factory_faiss(monkeypatch):
    """Test that SEARCH_BACKEND=faiss selects the FAISS backend."""
    pytest.importorskip("faiss")
    from bookrec.vector.faiss_store import FaissVectorStore

    monkeypatch.setenv("SEARCH_BACKEND", "faiss")
    assert isinstance(config.get_vector_store(8), FaissVectorStore)


@pytest.mark.parametrize("name,value,expected", [
    ("STORE_BACKEND", "mongodb", "Invalid STORE_BACKEND: mongodb"),
    ("EMBED_PROVIDER", "openai", "Invalid EMBED_PROVIDER: openai"),
    ("SEARCH_BACKEND", "annoy", "Invalid SEARCH_BACKEND: annoy"),
    ("TOP_K", "0", "TOP_K must be >= 1"),
    ("EMBED_DIM", "abc", "EMBED_DIM must be an integer"),
    ("RANGE_RADIUS", "-1", "RANGE_RADIUS must be >= 0"),
    ("STORE_TIMEOUT_SEC", "soon", "STORE_TIMEOUT_SEC must be a number"),
])
def test_validate_config_reports_issues(monkeypatch, name, value, expected):
    """Test that invalid settings are reported."""
    monkeypatch.setenv(name, value)
    assert expected in config.validate_config()


def test_ensure_sqlite_directory(monkeypatch, tmp_path):
    """Test that the SQLite parent directory is created."""
    target = tmp_path / "nested" / "dir" / "kv.db"
    monkeypatch.setenv("SQLITE_PATH", str(target))

    config.ensure_sqlite_directory()

    assert target.parent.is_dir()
