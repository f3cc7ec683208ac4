"""
Key-value store clients: the narrow get/set/exists/ping surface the index
builder and query engine depend on.

Every operation goes through bounded retry with exponential backoff for
transient failures; exhausting the retries raises StoreConnectionError.
"""

import random
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Generator, Optional, Tuple, Type, TypeVar, Union

from .errors import StoreConnectionError
from ..util.logging import logger

T = TypeVar("T")

Value = Union[str, bytes]


def _to_bytes(value: Value) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class IKVStore(ABC):
    """Abstract interface for the external key-value store."""

    # Exceptions that are safe to retry
    transient_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, max_attempts: int = 3, base_delay: float = 0.1, max_delay: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def _with_retry(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        """Run fn, retrying transient errors with exponential backoff and jitter."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except self.transient_errors as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
                delay += random.uniform(0, delay * 0.1)
                logger.log_store_operation(operation, key, "retry", {
                    "attempt": attempt,
                    "delay_s": round(delay, 3),
                    "error": str(e)[:100],
                })
                self._sleep(delay)

        logger.log_store_operation(operation, key, "failed", {"attempts": self.max_attempts})
        raise StoreConnectionError(
            f"{operation} '{key}' failed after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    def get(self, key: str) -> Optional[bytes]:
        """GET key; None when absent."""
        return self._with_retry("get", key, lambda: self._get(key))

    def set(self, key: str, value: Value) -> None:
        """SET key value (last write wins)."""
        data = _to_bytes(value)
        self._with_retry("set", key, lambda: self._set(key, data))

    def exists(self, key: str) -> bool:
        """EXISTS key."""
        return self._with_retry("exists", key, lambda: self._exists(key))

    def ping(self) -> None:
        """Verify the store is reachable.

        Raises:
            StoreConnectionError: The store cannot be reached
        """
        self._with_retry("ping", "-", self._ping)

    def close(self) -> None:
        pass

    @abstractmethod
    def _get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def _set(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def _exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def _ping(self) -> None:
        pass


class InMemoryKVStore(IKVStore):
    """Process-local dict store for tests and offline demos."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def _get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def _set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = value

    def _exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def _ping(self) -> None:
        return None

    def keys(self):
        """Snapshot of stored keys."""
        with self._lock:
            return sorted(self._data)


class SqliteKVStore(IKVStore):
    """Single-file SQLite store; one connection per operation."""

    transient_errors = (sqlite3.OperationalError,)

    def __init__(self, path: str, timeout: float = 5.0, **kwargs):
        super().__init__(**kwargs)
        self.path = path
        self.timeout = timeout
        self._initialized = False

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize the database with the kv table."""
        if self._initialized:
            return
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.commit()
        self._initialized = True

    def _get(self, key: str) -> Optional[bytes]:
        self.init_db()
        with self.get_db() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row else None

    def _set(self, key: str, value: bytes) -> None:
        self.init_db()
        with self.get_db() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, sqlite3.Binary(value)),
            )
            conn.commit()

    def _exists(self, key: str) -> bool:
        self.init_db()
        with self.get_db() as conn:
            return conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone() is not None

    def _ping(self) -> None:
        self.init_db()
        with self.get_db() as conn:
            conn.execute("SELECT 1").fetchone()


class RedisKVStore(IKVStore):
    """Redis client wrapper with connect/socket timeouts."""

    def __init__(self, url: str = "redis://127.0.0.1:6379", timeout: float = 5.0, client=None, **kwargs):
        import redis

        super().__init__(**kwargs)
        self.url = url
        self.transient_errors = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)
        self.client = client if client is not None else redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    def _get(self, key: str) -> Optional[bytes]:
        return self.client.get(key)

    def _set(self, key: str, value: bytes) -> None:
        self.client.set(key, value)

    def _exists(self, key: str) -> bool:
        return bool(self.client.exists(key))

    def _ping(self) -> None:
        self.client.ping()

    def close(self) -> None:
        self.client.close()
