# shared/keyed_lock.py
"""
One lock per key (sender phone). Two messages from the same number never run
"load flow -> mutate -> save" concurrently; different numbers do not block each other.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}
        self._guard = threading.Lock()

    def _acquire_ref(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._refs[key] = self._refs.get(key, 0) + 1
            return lock

    def _release_ref(self, key: str) -> None:
        with self._guard:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                # nobody waiting; drop it so the map does not grow with every phone seen
                del self._refs[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._acquire_ref(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._release_ref(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# process-wide instance used by the message worker
phone_locks = KeyedLock()
