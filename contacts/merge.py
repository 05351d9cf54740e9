# contacts/merge.py
"""
Create-or-update of a contact from an extraction, plus its tags and mentioned people.

The contact write comes first and is the only write that can fail the call; tag and
mention writes afterwards are best-effort and reported in MergeOutcome.failures.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from contacts.embeddings import EmbeddingJobs
from models.contact import SEARCHABLE_FIELDS, Contact, ExtractedContactData, MentionedConnection, MentionedConnectionData, Tag
from models.extraction import ConnectionsExtractionResult, ConnectionsExtractionSuccess, ExtractionResult, ExtractionSuccess
from observability.obs import safe_update_current_span_io, span_step
from observability.telemetry import mark_error
from shared import phone as phone_util
from shared.names import slugify
from store.base import ContactStore

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"

# filled only while empty on the existing record
FILL_ONLY_FIELDS = ("phone", "email", "company", "position", "location")

# update_contact conversation: extracted field -> contact field
UPDATE_FIELD_MAP = {
    "phone": "phone",
    "email": "email",
    "company": "company",
    "position": "position",
    "location": "location",
    "context": "notes",
}


class InvalidExtractionError(ValueError):
    """upsert() called with a failed extraction or one without a name."""


class ContactNotFound(LookupError):
    pass


@dataclass
class MergeOutcome:
    contact: Contact
    created: bool
    updated_fields: List[str] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    mentions: List[MentionedConnection] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


@dataclass
class UpdateOutcome:
    contact: Contact
    changes: Dict[str, str] = field(default_factory=dict)


def _present(v: Any) -> bool:
    return v is not None and (not isinstance(v, str) or bool(v.strip()))


def merge_contact_fields(existing: Contact, new: ExtractedContactData) -> Dict[str, Any]:
    """
    Changes to apply to `existing`: empty fields take the new non-null value, populated
    fields are kept, context is appended. Name is never rewritten by a merge.
    """
    changes: Dict[str, Any] = {}
    for f in FILL_ONLY_FIELDS:
        new_value = getattr(new, f)
        if _present(new_value) and not _present(getattr(existing, f)):
            changes[f] = new_value

    if _present(new.context):
        if not _present(existing.context):
            changes["context"] = new.context
        elif new.context.strip() != existing.context.strip():
            changes["context"] = existing.context + CONTEXT_SEPARATOR + new.context
    return changes


class MergeEngine:
    def __init__(self, store: ContactStore, embedding_jobs: Optional[EmbeddingJobs] = None):
        self.store = store
        self.embedding_jobs = embedding_jobs

    # --- lookup --------------------------------------------------------------

    def find_existing(self, owner_id: str, data: ExtractedContactData) -> Optional[Contact]:
        """Phone (any variant) first, then case-insensitive exact name."""
        canonical = phone_util.normalize(data.phone)
        if canonical:
            by_phone = self.store.find_by_phone(owner_id, phone_util.variants(canonical))
            if by_phone is not None:
                return by_phone
        if data.name:
            return self.store.find_by_name_ci(owner_id, data.name)
        return None

    # --- upsert --------------------------------------------------------------

    def upsert(self, owner_id: str, extraction: Union[ExtractionResult, ConnectionsExtractionResult]) -> MergeOutcome:
        if isinstance(extraction, ConnectionsExtractionSuccess):
            data, connections = extraction.contact, list(extraction.connections)
        elif isinstance(extraction, ExtractionSuccess):
            data, connections = extraction.data, []
        else:
            raise InvalidExtractionError("cannot merge an unsuccessful extraction")
        if not _present(data.name):
            raise InvalidExtractionError("extracted contact has no name")

        data = data.model_copy(update={"phone": phone_util.normalize(data.phone)})

        with span_step("merge_contact", kind="node", node="merge_contact"):
            existing = self.find_existing(owner_id, data)
            if existing is not None:
                changes = merge_contact_fields(existing, data)
                contact = self.store.update_contact(existing.id, changes) if changes else existing
                outcome = MergeOutcome(contact=contact, created=False, updated_fields=sorted(changes))
                logger.info("contact %s merged (%d field(s) changed)", contact.id, len(changes))
            else:
                fields = {
                    "name": data.name.strip(),
                    "phone": data.phone,
                    "email": data.email,
                    "company": data.company,
                    "position": data.position,
                    "location": data.location,
                    "context": data.context,
                }
                contact = self.store.create_contact(owner_id, fields)
                outcome = MergeOutcome(
                    contact=contact, created=True,
                    updated_fields=sorted(k for k, v in fields.items() if v is not None),
                )
                logger.info("contact %s created for owner %s", contact.id, owner_id)

            self._apply_tags(owner_id, outcome, data.tags)
            self._apply_mentions(outcome, connections)

            if outcome.created or any(f in SEARCHABLE_FIELDS for f in outcome.updated_fields):
                self._schedule_embedding(contact.id)

            safe_update_current_span_io(output={
                "contact_id": contact.id,
                "created": outcome.created,
                "updated_fields": outcome.updated_fields,
                "tags": len(outcome.tags),
                "mentions": len(outcome.mentions),
                "failures": outcome.failures,
            })
            return outcome

    def _apply_tags(self, owner_id: str, outcome: MergeOutcome, tag_names: List[str]) -> None:
        seen: set[str] = set()
        for name in tag_names:
            slug = slugify(name)
            if not slug or slug in seen:
                continue
            seen.add(slug)
            try:
                tag = self.store.get_tag_by_slug(owner_id, slug)
                if tag is None:
                    tag = self.store.create_tag(owner_id, name.strip(), slug)
                    logger.info("tag created: %s", slug)
                self.store.add_tag_to_contact(outcome.contact.id, tag.id)
                outcome.tags.append(tag)
            except Exception as e:
                logger.exception("tag %s could not be applied to contact %s", slug, outcome.contact.id)
                mark_error(e, kind="MergeError.tag")
                outcome.failures.append(f"tag:{slug}")

    def _apply_mentions(self, outcome: MergeOutcome, connections: List[MentionedConnectionData]) -> None:
        contact_id = outcome.contact.id
        for conn in connections:
            try:
                existing = self.store.find_mention_by_name_ci(contact_id, conn.name)
                if existing is None:
                    mention = self.store.create_mention(contact_id, {
                        "name": conn.name.strip(),
                        "description": conn.about,
                        "tags": list(conn.tags),
                        "phone": conn.phone,
                    })
                else:
                    changes: Dict[str, Any] = {}
                    if conn.about and not existing.description:
                        changes["description"] = conn.about
                    if conn.phone and not existing.phone:
                        changes["phone"] = conn.phone
                    if conn.tags and conn.tags != existing.tags:
                        changes["tags"] = list(conn.tags)
                    mention = self.store.update_mention(existing.id, changes) if changes else existing
                outcome.mentions.append(mention)
            except Exception as e:
                logger.exception("mentioned connection could not be saved for contact %s", contact_id)
                mark_error(e, kind="MergeError.mention")
                outcome.failures.append(f"mention:{conn.name}")

    def _schedule_embedding(self, contact_id: str) -> None:
        if self.embedding_jobs is not None:
            self.embedding_jobs.schedule(contact_id)

    # --- explicit update -----------------------------------------------------

    def apply_update(self, owner_id: str, contact_id: str, data: ExtractedContactData) -> UpdateOutcome:
        """
        User-requested edit of a known contact: non-null extracted fields overwrite,
        extracted context goes to notes. An empty change set writes nothing.
        """
        contact = self.store.get_contact(contact_id)
        if contact is None or contact.owner_id != owner_id:
            raise ContactNotFound(contact_id)

        changes: Dict[str, str] = {}
        for src, dst in UPDATE_FIELD_MAP.items():
            value = getattr(data, src)
            if src == "phone":
                value = phone_util.normalize(value)
            if _present(value):
                changes[dst] = value.strip()

        if not changes:
            return UpdateOutcome(contact=contact)

        updated = self.store.update_contact(contact_id, changes)
        logger.info("contact %s updated by request: %s", contact_id, sorted(changes))
        if any(f in SEARCHABLE_FIELDS for f in changes):
            self._schedule_embedding(contact_id)
        return UpdateOutcome(contact=updated, changes=changes)
