# store/base.py
"""
Repository interfaces the core talks to. Firestore implementations live next to
this file, in-memory ones in store/memory.py. All reads are owner-scoped unless
the method name says otherwise.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from models.contact import Contact, MentionedConnection, Tag
from models.registration_flow import RegistrationFlow
from models.user import NewUser, User


class ContactStore(Protocol):
    # contacts
    def get_contact(self, contact_id: str) -> Optional[Contact]: ...
    def list_contacts(self, owner_id: str) -> List[Contact]: ...
    def find_by_phone(self, owner_id: str, phones: Iterable[str]) -> Optional[Contact]: ...
    def find_by_name_ci(self, owner_id: str, name: str) -> Optional[Contact]: ...
    def find_by_phone_other_owners(self, owner_id: str, phones: Iterable[str]) -> List[Contact]: ...
    def create_contact(self, owner_id: str, fields: Dict[str, Any]) -> Contact: ...
    def update_contact(self, contact_id: str, changes: Dict[str, Any]) -> Contact: ...

    # embeddings
    def set_contact_embedding(self, contact_id: str, vector: List[float]) -> None: ...
    def semantic_search(self, owner_id: str, vector: List[float], limit: int = 5) -> List[Tuple[Contact, float]]: ...

    # tags
    def get_tag_by_slug(self, owner_id: str, slug: str) -> Optional[Tag]: ...
    def create_tag(self, owner_id: str, name: str, slug: str) -> Tag: ...
    def get_tags(self, tag_ids: Iterable[str]) -> List[Tag]: ...
    def add_tag_to_contact(self, contact_id: str, tag_id: str) -> bool: ...

    # mentioned connections
    def list_mentions(self, contact_ids: Iterable[str]) -> List[MentionedConnection]: ...
    def find_mention_by_name_ci(self, contact_id: str, name: str) -> Optional[MentionedConnection]: ...
    def create_mention(self, contact_id: str, fields: Dict[str, Any]) -> MentionedConnection: ...
    def update_mention(self, mention_id: str, changes: Dict[str, Any]) -> MentionedConnection: ...


class UserStore(Protocol):
    def get(self, user_id: str) -> Optional[User]: ...
    def get_by_email(self, email: str) -> Optional[User]: ...
    def find_by_phone(self, phone: str) -> Optional[User]: ...
    def list_users(self) -> List[User]: ...
    def create(self, new_user: NewUser) -> User: ...


class RegistrationFlowStore(Protocol):
    def get(self, phone: str) -> Optional[RegistrationFlow]: ...
    def save(self, flow: RegistrationFlow) -> None: ...
    def list_open_expired(self, now: datetime) -> List[RegistrationFlow]: ...
