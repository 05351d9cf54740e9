# store/memory.py
"""
Process-local stores. Used by the test-suite and by STORE_BACKEND=memory for local runs.
Same semantics as the Firestore stores, including owner scoping and case-insensitive lookups.
"""
from __future__ import annotations

import math
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.contact import Contact, MentionedConnection, Tag
from models.registration_flow import RegistrationFlow
from models.user import NewUser, User
from shared import phone as phone_util
from shared.time import utcnow
from store.user_store import hash_password


def _new_id() -> str:
    return uuid.uuid4().hex


def _cosine(a: List[float], b: List[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if na == 0 or nb == 0:
        return 0.0
    return dot / (na * nb)


class InMemoryContactStore:
    def __init__(self):
        self._lock = threading.RLock()
        self.contacts: Dict[str, Contact] = {}
        self.embeddings: Dict[str, List[float]] = {}
        self.tags: Dict[str, Tag] = {}
        self.mentions: Dict[str, MentionedConnection] = {}

    # ---------------------- contacts -----------------------------------

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        with self._lock:
            c = self.contacts.get(contact_id)
            return c.model_copy(deep=True) if c else None

    def list_contacts(self, owner_id: str) -> List[Contact]:
        with self._lock:
            out = [c.model_copy(deep=True) for c in self.contacts.values() if c.owner_id == owner_id]
        return sorted(out, key=lambda c: c.created_at)

    def find_by_phone(self, owner_id: str, phones: Iterable[str]) -> Optional[Contact]:
        wanted = set(phones)
        if not wanted:
            return None
        for c in self.list_contacts(owner_id):
            if c.phone and c.phone in wanted:
                return c
        return None

    def find_by_name_ci(self, owner_id: str, name: str) -> Optional[Contact]:
        target = (name or "").strip().casefold()
        if not target:
            return None
        for c in self.list_contacts(owner_id):
            if c.name.strip().casefold() == target:
                return c
        return None

    def find_by_phone_other_owners(self, owner_id: str, phones: Iterable[str]) -> List[Contact]:
        wanted = set(phones)
        with self._lock:
            return [
                c.model_copy(deep=True)
                for c in self.contacts.values()
                if c.owner_id != owner_id and c.phone and c.phone in wanted
            ]

    def create_contact(self, owner_id: str, fields: Dict[str, Any]) -> Contact:
        now = utcnow()
        contact = Contact(id=_new_id(), owner_id=owner_id, created_at=now, updated_at=now, **fields)
        with self._lock:
            self.contacts[contact.id] = contact
        return contact.model_copy(deep=True)

    def update_contact(self, contact_id: str, changes: Dict[str, Any]) -> Contact:
        with self._lock:
            cur = self.contacts.get(contact_id)
            if cur is None:
                raise KeyError(f"contact not found: {contact_id}")
            updated = cur.model_copy(update={**changes, "updated_at": utcnow()}, deep=True)
            self.contacts[contact_id] = updated
            return updated.model_copy(deep=True)

    # ---------------------- embeddings ---------------------------------

    def set_contact_embedding(self, contact_id: str, vector: List[float]) -> None:
        with self._lock:
            self.embeddings[contact_id] = list(vector)

    def semantic_search(self, owner_id: str, vector: List[float], limit: int = 5) -> List[Tuple[Contact, float]]:
        scored: List[Tuple[Contact, float]] = []
        for c in self.list_contacts(owner_id):
            emb = self.embeddings.get(c.id)
            if emb is None:
                continue
            scored.append((c, _cosine(vector, emb)))
        scored.sort(key=lambda t: t[1], reverse=True)
        return scored[:limit]

    # ---------------------- tags ---------------------------------------

    def get_tag_by_slug(self, owner_id: str, slug: str) -> Optional[Tag]:
        with self._lock:
            for t in self.tags.values():
                if t.owner_id == owner_id and t.slug == slug:
                    return t
        return None

    def create_tag(self, owner_id: str, name: str, slug: str) -> Tag:
        tag = Tag(id=_new_id(), owner_id=owner_id, name=name, slug=slug)
        with self._lock:
            self.tags[tag.id] = tag
        return tag

    def get_tags(self, tag_ids: Iterable[str]) -> List[Tag]:
        with self._lock:
            return [self.tags[t] for t in tag_ids if t in self.tags]

    def add_tag_to_contact(self, contact_id: str, tag_id: str) -> bool:
        with self._lock:
            cur = self.contacts.get(contact_id)
            if cur is None:
                raise KeyError(f"contact not found: {contact_id}")
            if tag_id in cur.tag_ids:
                return False
            self.contacts[contact_id] = cur.model_copy(update={"tag_ids": [*cur.tag_ids, tag_id]})
            return True

    # ---------------------- mentioned connections ----------------------

    def list_mentions(self, contact_ids: Iterable[str]) -> List[MentionedConnection]:
        ids = set(contact_ids)
        with self._lock:
            out = [m.model_copy(deep=True) for m in self.mentions.values() if m.contact_id in ids]
        return sorted(out, key=lambda m: m.created_at)

    def find_mention_by_name_ci(self, contact_id: str, name: str) -> Optional[MentionedConnection]:
        target = (name or "").strip().casefold()
        for m in self.list_mentions([contact_id]):
            if m.name.strip().casefold() == target:
                return m
        return None

    def create_mention(self, contact_id: str, fields: Dict[str, Any]) -> MentionedConnection:
        now = utcnow()
        mention = MentionedConnection(id=_new_id(), contact_id=contact_id, created_at=now, updated_at=now, **fields)
        with self._lock:
            self.mentions[mention.id] = mention
        return mention.model_copy(deep=True)

    def update_mention(self, mention_id: str, changes: Dict[str, Any]) -> MentionedConnection:
        with self._lock:
            cur = self.mentions.get(mention_id)
            if cur is None:
                raise KeyError(f"mention not found: {mention_id}")
            updated = cur.model_copy(update={**changes, "updated_at": utcnow()}, deep=True)
            self.mentions[mention_id] = updated
            return updated.model_copy(deep=True)


class InMemoryUserStore:
    def __init__(self, users: Iterable[User] = ()):
        self._lock = threading.Lock()
        self.users: Dict[str, User] = {u.user_id: u for u in users}

    def get(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        target = (email or "").strip().lower()
        for u in self.users.values():
            if u.email.lower() == target:
                return u
        return None

    def find_by_phone(self, phone: str) -> Optional[User]:
        wanted = phone_util.variants(phone) or {phone_util.digits_only(phone)}
        for u in self.users.values():
            if u.phone in wanted or phone_util.variants(u.phone) & wanted:
                return u
        return None

    def list_users(self) -> List[User]:
        return list(self.users.values())

    def create(self, new_user: NewUser) -> User:
        user = User(
            user_id=_new_id(),
            name=new_user.name,
            email=new_user.email.strip().lower(),
            phone=new_user.phone,
            password_hash=hash_password(new_user.temporary_password),
        )
        with self._lock:
            if self.get_by_email(user.email) is not None:
                raise ValueError(f"email already registered: {user.email}")
            self.users[user.user_id] = user
        return user


class InMemoryRegistrationFlowStore:
    def __init__(self):
        self._lock = threading.Lock()
        self.flows: Dict[str, RegistrationFlow] = {}

    def get(self, phone: str) -> Optional[RegistrationFlow]:
        with self._lock:
            f = self.flows.get(phone)
            return f.model_copy(deep=True) if f else None

    def save(self, flow: RegistrationFlow) -> None:
        with self._lock:
            self.flows[flow.phone] = flow.model_copy(deep=True)

    def list_open_expired(self, now: datetime) -> List[RegistrationFlow]:
        with self._lock:
            return [
                f.model_copy(deep=True)
                for f in self.flows.values()
                if not f.is_terminal and f.is_expired(now)
            ]
