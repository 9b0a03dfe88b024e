"""Key-value storage for client-local session state.

The cart line items and the preferred display currency are persisted as plain
strings under fixed keys. Two backends are available:
- In-memory dictionary (default, per process)
- Redis, with namespaced keys and graceful degradation when the server is
  unreachable
"""

import logging
from typing import Protocol

import redis

from ..config import StorageConfig

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal string key-value store interface."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dictionary-backed store, mostly for tests and single-process use."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStore:
    """Redis-backed store.

    Reads that fail return None and writes that fail are dropped; both are
    logged. Callers treat a missing value as empty state.
    """

    def __init__(
        self,
        config: StorageConfig,
        namespace: str = "default",
        client: redis.Redis | None = None,
    ):
        """Initialize the store.

        Args:
            config: Storage settings with the Redis URL and key prefix.
            namespace: Session id separating this session's keys.
            client: Pre-built Redis client, mainly for tests.
        """
        self.config = config
        self.namespace = namespace
        self._client = client or redis.Redis.from_url(
            config.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def _key(self, key: str) -> str:
        return f"{self.config.key_prefix}:{self.namespace}:{key}"

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Failed to read {key} from Redis: {e}")
            return None

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(self._key(key), value)
        except redis.RedisError as e:
            logger.warning(f"Failed to write {key} to Redis: {e}")

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Failed to delete {key} from Redis: {e}")


def create_store(config: StorageConfig, session_id: str = "default") -> KeyValueStore:
    """Build the store selected by ``config.backend`` for one session.

    Memory stores are private to the returned object. Redis stores share the
    server and are isolated by a ``<prefix>:<session_id>`` key namespace.

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend = config.backend.strip().lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "redis":
        logger.debug(f"Using Redis storage at {config.redis_url} for session {session_id}")
        return RedisStore(config, namespace=session_id)
    raise ValueError(f"Unknown storage backend: {config.backend}")
