"""Process-local locks keyed by entity.

Row locks (``SELECT ... FOR UPDATE``) serialize writers on a transactional
database. Stores without row locking (SQLite, a single shared connection)
rely on these locks instead, so every read-compute-write sequence on one
contribution, loan or distribution runs alone inside this process.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Tuple


class KeyedLock:
    """A registry of re-entrant locks, one per key, dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, Tuple[threading.RLock, int]] = {}

    def _acquire_entry(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_entry(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._release_entry(key)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


_registry = KeyedLock()


@contextmanager
def entity_lock(kind: str, key) -> Iterator[None]:
    """Serialize work on one entity, e.g. ``entity_lock("loan", loan_id)``."""
    with _registry.hold((kind, str(key))):
        yield
