"""
Session-scoped snapshot persistence.

Snapshots are kept per browsing session so a report preview survives page
reloads but not the end of the session. Storage is best-effort: it is a
convenience, never the system of record. Every failure is logged as a
warning and degrades to "no stored snapshot"; nothing here raises into the
caller.

Layout of a stored entry::

    key   = "<prefix>:<session_id>:<snapshot key>"
    value = {"timestamp": "<ISO-8601>", "dataHash": "...",
             "portfolioMetrics": {...}, "buildingData": [...],
             "uniformatData": [...], "capitalForecastData": [...]}

Backends only need ``get`` / ``set`` / ``remove`` / ``keys`` so the snapshot
logic never depends on a particular storage engine. Entries expire after
``ttl_seconds`` without access, which is how a session "ends" when the user
simply walks away.
"""
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

import redis

from app.config import SNAPSHOT_KEY_PREFIX, SNAPSHOT_SESSION_TTL_SECONDS
from app.services.perf_monitor import snapshot_metrics
from app.services.snapshot_engine import DataSnapshot, SnapshotFormatError

logger = logging.getLogger("bca-api.snapshot-store")


# ── Key-value backends ─────────────────────────────────────────────────────────

class SessionKeyValueStore(ABC):
    """Narrow key -> text interface implemented by every storage backend."""

    def __init__(self, ttl_seconds: int = SNAPSHOT_SESSION_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    @contextmanager
    def connection(self) -> Iterator["SessionKeyValueStore"]:
        """Scoped access to the backend; released on every exit path."""
        yield self

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Stored value, or None when absent or expired. Slides the expiry."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` and (re)start its idle expiry."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``; absent keys are ignored."""

    @abstractmethod
    def keys(self, prefix: str) -> List[str]:
        """Live keys starting with ``prefix``, sorted."""

    def close(self) -> None:
        pass


class InMemorySessionStore(SessionKeyValueStore):
    """
    Process-local backend. Entries carry a monotonic expiry that slides on
    every read or write. Suitable for a single worker and for tests.
    """

    def __init__(self, ttl_seconds: int = SNAPSHOT_SESSION_TTL_SECONDS, clock=time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, Tuple[str, float]] = {}

    @contextmanager
    def connection(self) -> Iterator["InMemorySessionStore"]:
        with self._lock:
            yield self

    def _expired(self, expires_at: float) -> bool:
        return self._clock() >= expires_at

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._entries[key]
                return None
            self._entries[key] = (value, self._clock() + self.ttl_seconds)
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def keys(self, prefix: str) -> List[str]:
        with self._lock:
            for key in [k for k, (_, exp) in self._entries.items() if self._expired(exp)]:
                del self._entries[key]
            return sorted(k for k in self._entries if k.startswith(prefix))

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisSessionStore(SessionKeyValueStore):
    """Redis backend: ``SET .. EX`` on write, ``GETEX .. EX`` on read to slide the TTL."""

    def __init__(self, client, ttl_seconds: int = SNAPSHOT_SESSION_TTL_SECONDS):
        super().__init__(ttl_seconds)
        self._client = client

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = SNAPSHOT_SESSION_TTL_SECONDS) -> "RedisSessionStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )
        return cls(client, ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        return self._client.getex(key, ex=self.ttl_seconds)

    def set(self, key: str, value: str) -> None:
        self._client.set(key, value, ex=self.ttl_seconds)

    def remove(self, key: str) -> None:
        self._client.delete(key)

    def keys(self, prefix: str) -> List[str]:
        return sorted(self._client.scan_iter(match=f"{prefix}*"))

    def close(self) -> None:
        self._client.close()


def create_backend(kind: str, redis_url: str, ttl_seconds: int = SNAPSHOT_SESSION_TTL_SECONDS) -> SessionKeyValueStore:
    """Backend factory used at application startup."""
    if kind == "redis":
        logger.info("Snapshot store backend: redis")
        return RedisSessionStore.from_url(redis_url, ttl_seconds)
    if kind != "memory":
        logger.warning(f"Unknown SNAPSHOT_STORE_BACKEND '{kind}' — falling back to memory")
    logger.info("Snapshot store backend: memory")
    return InMemorySessionStore(ttl_seconds)


# ── Snapshot store ─────────────────────────────────────────────────────────────

class SnapshotStore:
    """
    Best-effort persistence of DataSnapshots for one browsing session.

    One key per report/preview context, so several previews can hold their own
    snapshot side by side. Two writers on the same key: last write wins.
    """

    def __init__(self, backend: SessionKeyValueStore, session_id: str, prefix: str = SNAPSHOT_KEY_PREFIX):
        self.backend = backend
        self.session_id = session_id
        self.prefix = prefix

    @property
    def session_prefix(self) -> str:
        return f"{self.prefix}:{self.session_id}:"

    def store_key(self, key: str) -> str:
        return f"{self.session_prefix}{key}"

    def _log_extra(self, key: str) -> dict:
        return {"session_id": self.session_id, "snapshot_key": key}

    @contextmanager
    def _timed(self, operation: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            snapshot_metrics.record_store_duration(
                operation, round((time.perf_counter() - start) * 1000, 2)
            )

    def save(self, key: str, snapshot: DataSnapshot) -> bool:
        """
        Persist ``snapshot`` under ``key``. Returns False (after logging a
        warning) when serialization or the backend fails.
        """
        with self._timed("save"):
            try:
                payload = json.dumps(snapshot.to_dict())
                with self.backend.connection() as conn:
                    conn.set(self.store_key(key), payload)
            except Exception as e:
                logger.warning(f"Snapshot save failed for '{key}': {e}", extra=self._log_extra(key))
                snapshot_metrics.record_save(False)
                return False
        snapshot_metrics.record_save(True)
        logger.debug("snapshot saved", extra={**self._log_extra(key), "data_hash": snapshot.data_hash})
        return True

    def load(self, key: str) -> Optional[DataSnapshot]:
        """
        Read the snapshot stored under ``key``. Missing, corrupt or unreadable
        entries all come back as None.
        """
        with self._timed("load"):
            try:
                with self.backend.connection() as conn:
                    raw = conn.get(self.store_key(key))
            except Exception as e:
                logger.warning(f"Snapshot load failed for '{key}': {e}", extra=self._log_extra(key))
                snapshot_metrics.record_load("failure")
                return None

            if raw is None:
                logger.debug("no stored snapshot", extra=self._log_extra(key))
                snapshot_metrics.record_load("miss")
                return None

            try:
                snapshot = DataSnapshot.from_dict(json.loads(raw))
            except (ValueError, TypeError, SnapshotFormatError) as e:
                logger.warning(f"Discarding malformed snapshot '{key}': {e}", extra=self._log_extra(key))
                snapshot_metrics.record_load("corrupt")
                return None

        snapshot_metrics.record_load("hit")
        return snapshot

    def clear(self, key: str) -> None:
        """Remove the snapshot stored under ``key``. Failures are only logged."""
        with self._timed("clear"):
            try:
                with self.backend.connection() as conn:
                    conn.remove(self.store_key(key))
            except Exception as e:
                logger.warning(f"Snapshot clear failed for '{key}': {e}", extra=self._log_extra(key))
                snapshot_metrics.record_clear(False)
                return
        snapshot_metrics.record_clear(True)

    def list_keys(self) -> List[str]:
        """Snapshot keys currently held for this session (empty on backend failure)."""
        try:
            with self.backend.connection() as conn:
                stored = conn.keys(self.session_prefix)
        except Exception as e:
            logger.warning(f"Snapshot key listing failed: {e}", extra={"session_id": self.session_id})
            return []
        return [k[len(self.session_prefix):] for k in stored]

    def clear_session(self) -> int:
        """End the session explicitly: drop every snapshot it holds. Returns the count removed."""
        removed = 0
        for key in self.list_keys():
            self.clear(key)
            removed += 1
        logger.info(f"Cleared {removed} snapshot(s) for session", extra={"session_id": self.session_id})
        return removed
