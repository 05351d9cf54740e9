# agent/pipeline.py
"""
Message pipeline for registered users:

  pending update for this phone?  -> apply it
  otherwise classify intent:
    query            -> subject -> ContactResolver.search -> formatted reply
    update_contact   -> subject -> find contact -> pending update + prompt
    contact_info     -> extract_with_connections -> MergeEngine.upsert -> summary
    register_intent  -> ask for the contact's data
    other            -> greeting / help
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from agent.entity_extractor import EntityExtractor
from agent.intent_classifier import IntentClassifier
from contacts import formatting
from contacts.merge import ContactNotFound, MergeEngine
from contacts.resolver import ContactResolver
from models.intent import MessageIntent
from models.user import User
from observability.obs import safe_update_current_span_io, span_step
from shared.time import utcnow
from store.base import ContactStore

logger = logging.getLogger(__name__)


@dataclass
class PendingUpdate:
    contact_id: str
    contact_name: str
    expires_at: datetime


class PendingUpdates:
    """Per-phone "next message edits this contact" state. Process-local, TTL bound."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._items: Dict[str, PendingUpdate] = {}
        self._lock = threading.Lock()

    def set(self, phone: str, contact_id: str, contact_name: str) -> PendingUpdate:
        item = PendingUpdate(contact_id=contact_id, contact_name=contact_name, expires_at=utcnow() + self.ttl)
        with self._lock:
            self._items[phone] = item
        logger.info("pending update stored for contact %s", contact_id)
        return item

    def get(self, phone: str) -> Optional[PendingUpdate]:
        with self._lock:
            item = self._items.get(phone)
            if item is not None and item.expires_at <= utcnow():
                del self._items[phone]
                logger.info("pending update expired for contact %s", item.contact_id)
                return None
            return item

    def clear(self, phone: str) -> None:
        with self._lock:
            self._items.pop(phone, None)


class ContactPipeline:
    def __init__(
        self,
        classifier: IntentClassifier,
        extractor: EntityExtractor,
        resolver: ContactResolver,
        merger: MergeEngine,
        contacts: ContactStore,
        pending: Optional[PendingUpdates] = None,
    ):
        self.classifier = classifier
        self.extractor = extractor
        self.resolver = resolver
        self.merger = merger
        self.contacts = contacts
        self.pending = pending or PendingUpdates()

    def handle(self, user: User, phone: str, text: str) -> str:
        with span_step("contact_pipeline", kind="node", node="contact_pipeline"):
            pending = self.pending.get(phone)
            if pending is not None:
                return self._apply_pending_update(user, phone, pending, text)

            intent = self.classifier.classify(text)
            logger.info("intent for user %s: %s", user.user_id, intent.value)
            safe_update_current_span_io(output={"intent": intent.value})

            if intent == MessageIntent.QUERY:
                return self._query(user, text)
            if intent == MessageIntent.UPDATE_CONTACT:
                return self._start_update(user, phone, text)
            if intent == MessageIntent.CONTACT_INFO:
                return self._save_contact(user, text)
            if intent == MessageIntent.REGISTER_INTENT:
                return formatting.REGISTER_INTENT_REPLY
            return formatting.GREETING_REPLY

    # --- intents -------------------------------------------------------------

    def _query(self, user: User, text: str) -> str:
        subject = self.classifier.extract_query_subject(text)
        if not subject:
            return formatting.QUERY_SUBJECT_MISSING
        result = self.resolver.search(user.user_id, subject)
        return formatting.format_search_result(result)

    def _start_update(self, user: User, phone: str, text: str) -> str:
        name = self.classifier.extract_query_subject(text)
        if not name:
            return formatting.UPDATE_SUBJECT_MISSING
        contact = self.resolver.find_by_name_normalized(user.user_id, name)
        if contact is None:
            return formatting.format_update_target_missing(name)
        self.pending.set(phone, contact.id, contact.name)
        return formatting.format_update_prompt(contact, self.contacts.get_tags(contact.tag_ids))

    def _save_contact(self, user: User, text: str) -> str:
        extraction = self.extractor.extract_with_connections(text)
        if not extraction.success:
            logger.info("contact_info message without usable extraction: %s", extraction.reason)
            return formatting.EXTRACTION_FAILED
        outcome = self.merger.upsert(user.user_id, extraction)
        if outcome.failures:
            logger.warning("contact %s saved with partial failures: %s", outcome.contact.id, outcome.failures)
        return formatting.format_saved(outcome)

    def _apply_pending_update(self, user: User, phone: str, pending: PendingUpdate, text: str) -> str:
        extraction = self.extractor.extract(text, require_name=False)
        if not extraction.success:
            # keep the pending state so the user can rephrase
            return formatting.UPDATE_NOT_UNDERSTOOD

        try:
            outcome = self.merger.apply_update(user.user_id, pending.contact_id, extraction.data)
        except ContactNotFound:
            self.pending.clear(phone)
            logger.info("pending update target %s no longer exists", pending.contact_id)
            return formatting.format_update_target_missing(pending.contact_name)

        if not outcome.changes:
            return formatting.format_update_nothing(pending.contact_name)

        self.pending.clear(phone)
        return formatting.format_update_confirmation(pending.contact_name, outcome.changes)
