# contacts/embeddings.py
"""
Search embeddings for contacts, regenerated in the background after merges.

Jobs run on a small thread pool. A failed job is logged and marked on the trace;
it never reaches the request that scheduled it.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import List, Optional, Set

from agent.llm_client import EmbeddingClient
from models.contact import SEARCHABLE_FIELDS, Contact
from observability.telemetry import mark_error
from store.base import ContactStore

logger = logging.getLogger(__name__)


def embedding_text(contact: Contact) -> str:
    parts = [getattr(contact, f) for f in SEARCHABLE_FIELDS]
    return " ".join(p.strip() for p in parts if p and p.strip())


class EmbeddingJobs:
    def __init__(
        self,
        store: ContactStore,
        client: Optional[EmbeddingClient],
        *,
        executor: Optional[Executor] = None,
        max_workers: int = 2,
    ):
        self.store = store
        self.client = client
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="embeddings")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def regenerate(self, contact_id: str) -> bool:
        """Synchronous regeneration. Returns False when there is nothing to embed."""
        if self.client is None:
            return False
        contact = self.store.get_contact(contact_id)
        if contact is None:
            logger.info("embedding skipped: contact %s no longer exists", contact_id)
            return False
        text = embedding_text(contact)
        if not text:
            return False
        vector = self.client.embed(text)
        self.store.set_contact_embedding(contact_id, vector)
        logger.info("embedding updated for contact %s", contact_id)
        return True

    def schedule(self, contact_id: str) -> Optional[Future]:
        """Fire-and-forget from the caller's point of view."""
        if self.client is None:
            return None
        fut = self._executor.submit(self.regenerate, contact_id)
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(lambda f, cid=contact_id: self._on_done(cid, f))
        return fut

    def regenerate_all(self, owner_id: str) -> int:
        """Backfill: schedules every contact of the owner. Returns the number scheduled."""
        if self.client is None:
            return 0
        scheduled = 0
        for contact in self.store.list_contacts(owner_id):
            if self.schedule(contact.id) is not None:
                scheduled += 1
        logger.info("embedding backfill scheduled %d contact(s) for owner %s", scheduled, owner_id)
        return scheduled

    def _on_done(self, contact_id: str, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("embedding job failed for contact %s: %s", contact_id, exc, exc_info=exc)
            mark_error(exc, kind="EmbeddingJobError")

    def wait(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pending: List[Future] = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
