# store/contact_store.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.cloud.firestore_v1.base_vector_query import DistanceMeasure
from google.cloud.firestore_v1.vector import Vector

from db.base import get_db
from models.contact import Contact, MentionedConnection, Tag

logger = logging.getLogger(__name__)

# Firestore "in" filters accept at most 30 values.
_IN_LIMIT = 30


def _chunks(values: List[str], size: int = _IN_LIMIT):
    for i in range(0, len(values), size):
        yield values[i:i + size]


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class FirestoreContactStore:
    """
    Firestore-backed contacts:
      contacts/{id}            owner_id, name, name_lower, phone, ..., tag_ids[], embedding (Vector)
      tags/{id}                owner_id, name, slug
      mentioned_connections/{id}  contact_id, name, name_lower, description, tags[], phone

    Case-insensitive lookups go through the *_lower shadow fields.
    Semantic search needs a vector index on contacts.embedding (cosine).
    """

    def __init__(self, db=None):
        self.db = db or get_db()
        self.contacts = self.db.collection("contacts")
        self.tags = self.db.collection("tags")
        self.mentions = self.db.collection("mentioned_connections")

    # ---------------------- internal utils -----------------------------------

    @staticmethod
    def _contact(doc) -> Contact:
        data = doc.to_dict() or {}
        data.pop("embedding", None)
        data.pop("name_lower", None)
        data.pop("vector_distance", None)
        data["id"] = doc.id
        return Contact(**data)

    @staticmethod
    def _mention(doc) -> MentionedConnection:
        data = doc.to_dict() or {}
        data.pop("name_lower", None)
        data["id"] = doc.id
        return MentionedConnection(**data)

    # ---------------------- contacts -----------------------------------------

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        snap = self.contacts.document(contact_id).get()
        return self._contact(snap) if snap.exists else None

    def list_contacts(self, owner_id: str) -> List[Contact]:
        docs = self.contacts.where("owner_id", "==", owner_id).stream()
        return sorted((self._contact(d) for d in docs), key=lambda c: c.created_at)

    def find_by_phone(self, owner_id: str, phones: Iterable[str]) -> Optional[Contact]:
        wanted = sorted(set(phones))
        if not wanted:
            return None
        q = (
            self.contacts.where("owner_id", "==", owner_id)
            .where("phone", "in", wanted[:_IN_LIMIT])
            .limit(1)
        )
        for doc in q.stream():
            return self._contact(doc)
        return None

    def find_by_name_ci(self, owner_id: str, name: str) -> Optional[Contact]:
        target = (name or "").strip().casefold()
        if not target:
            return None
        q = (
            self.contacts.where("owner_id", "==", owner_id)
            .where("name_lower", "==", target)
            .limit(1)
        )
        for doc in q.stream():
            return self._contact(doc)
        return None

    def find_by_phone_other_owners(self, owner_id: str, phones: Iterable[str]) -> List[Contact]:
        out: List[Contact] = []
        for chunk in _chunks(sorted(set(phones))):
            for doc in self.contacts.where("phone", "in", chunk).stream():
                c = self._contact(doc)
                if c.owner_id != owner_id:
                    out.append(c)
        return out

    def create_contact(self, owner_id: str, fields: Dict[str, Any]) -> Contact:
        now = datetime.now(timezone.utc)
        doc_ref = self.contacts.document()
        contact = Contact(id=doc_ref.id, owner_id=owner_id, created_at=now, updated_at=now, **fields)
        data = contact.model_dump(exclude={"id"})
        data["name_lower"] = contact.name.strip().casefold()
        doc_ref.set(data)
        logger.info("[CONTACTS] Created %s for owner %s", doc_ref.id, owner_id)
        return contact

    def update_contact(self, contact_id: str, changes: Dict[str, Any]) -> Contact:
        doc_ref = self.contacts.document(contact_id)
        data = dict(changes)
        data["updated_at"] = datetime.now(timezone.utc)
        if data.get("name"):
            data["name_lower"] = data["name"].strip().casefold()
        doc_ref.set(data, merge=True)
        snap = doc_ref.get()
        if not snap.exists:
            raise KeyError(f"contact not found: {contact_id}")
        return self._contact(snap)

    # ---------------------- embeddings ---------------------------------------

    def set_contact_embedding(self, contact_id: str, vector: List[float]) -> None:
        self.contacts.document(contact_id).set({"embedding": Vector(list(vector))}, merge=True)

    def semantic_search(self, owner_id: str, vector: List[float], limit: int = 5) -> List[Tuple[Contact, float]]:
        q = self.contacts.where("owner_id", "==", owner_id).find_nearest(
            vector_field="embedding",
            query_vector=Vector(list(vector)),
            distance_measure=DistanceMeasure.COSINE,
            limit=limit,
            distance_result_field="vector_distance",
        )
        out: List[Tuple[Contact, float]] = []
        for doc in q.stream():
            distance = (doc.to_dict() or {}).get("vector_distance")
            if distance is None:
                continue
            # cosine distance -> similarity
            out.append((self._contact(doc), 1.0 - float(distance)))
        return out

    # ---------------------- tags ---------------------------------------------

    def get_tag_by_slug(self, owner_id: str, slug: str) -> Optional[Tag]:
        q = self.tags.where("owner_id", "==", owner_id).where("slug", "==", slug).limit(1)
        for doc in q.stream():
            return Tag(id=doc.id, **(doc.to_dict() or {}))
        return None

    def create_tag(self, owner_id: str, name: str, slug: str) -> Tag:
        doc_ref = self.tags.document()
        tag = Tag(id=doc_ref.id, owner_id=owner_id, name=name, slug=slug)
        doc_ref.set(tag.model_dump(exclude={"id"}))
        return tag

    def get_tags(self, tag_ids: Iterable[str]) -> List[Tag]:
        out: List[Tag] = []
        for tag_id in tag_ids:
            snap = self.tags.document(tag_id).get()
            if snap.exists:
                out.append(Tag(id=snap.id, **(snap.to_dict() or {})))
        return out

    def add_tag_to_contact(self, contact_id: str, tag_id: str) -> bool:
        doc_ref = self.contacts.document(contact_id)
        snap = doc_ref.get()
        if not snap.exists:
            raise KeyError(f"contact not found: {contact_id}")
        current = (snap.to_dict() or {}).get("tag_ids") or []
        if tag_id in current:
            return False
        doc_ref.update({"tag_ids": [*current, tag_id]})
        return True

    # ---------------------- mentioned connections ----------------------------

    def list_mentions(self, contact_ids: Iterable[str]) -> List[MentionedConnection]:
        out: List[MentionedConnection] = []
        for chunk in _chunks(sorted(set(contact_ids))):
            for doc in self.mentions.where("contact_id", "in", chunk).stream():
                out.append(self._mention(doc))
        return sorted(out, key=lambda m: m.created_at)

    def find_mention_by_name_ci(self, contact_id: str, name: str) -> Optional[MentionedConnection]:
        q = (
            self.mentions.where("contact_id", "==", contact_id)
            .where("name_lower", "==", (name or "").strip().casefold())
            .limit(1)
        )
        for doc in q.stream():
            return self._mention(doc)
        return None

    def create_mention(self, contact_id: str, fields: Dict[str, Any]) -> MentionedConnection:
        now = datetime.now(timezone.utc)
        doc_ref = self.mentions.document()
        mention = MentionedConnection(id=doc_ref.id, contact_id=contact_id, created_at=now, updated_at=now, **fields)
        data = mention.model_dump(exclude={"id"})
        data["name_lower"] = mention.name.strip().casefold()
        doc_ref.set(data)
        return mention

    def update_mention(self, mention_id: str, changes: Dict[str, Any]) -> MentionedConnection:
        doc_ref = self.mentions.document(mention_id)
        data = _drop_none(dict(changes))
        data["updated_at"] = datetime.now(timezone.utc)
        doc_ref.set(data, merge=True)
        snap = doc_ref.get()
        if not snap.exists:
            raise KeyError(f"mention not found: {mention_id}")
        return self._mention(snap)
