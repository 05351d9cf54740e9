# dedupe/cache.py
import threading
from datetime import timedelta

from shared.time import utcnow


class IdempotencyCache:
    """Inbound message ids already handled. Webhook providers redeliver on timeouts."""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.store: dict = {}
        self._lock = threading.Lock()

    def _purge(self):
        now = utcnow()
        expired = [k for k, ts in self.store.items() if now - ts > self.ttl]
        for k in expired:
            del self.store[k]

    def check_and_mark(self, key: str) -> bool:
        """True when the key was already seen; marks it otherwise."""
        with self._lock:
            self._purge()
            if key in self.store:
                return True
            self.store[key] = utcnow()
            return False


# global instance (for MVP)
idempotency_cache = IdempotencyCache(ttl_seconds=3600)  # 1h
