# store/user_store.py
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from db.base import get_db
from models.user import NewUser, User
from shared import phone as phone_util

logger = logging.getLogger(__name__)

_SCRYPT_N = 2 ** 14
_SCRYPT_R = 8
_SCRYPT_P = 1


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    digest = hashlib.scrypt(password.encode(), salt=salt, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return "scrypt$" + base64.b64encode(salt).decode() + "$" + base64.b64encode(digest).decode()


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, salt_b64, digest_b64 = stored.split("$")
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    salt = base64.b64decode(salt_b64)
    expected = base64.b64decode(digest_b64)
    digest = hashlib.scrypt(password.encode(), salt=salt, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return hmac.compare_digest(digest, expected)


class FirestoreUserStore:
    """
    users/{user_id}. Phones are stored canonical; lookups expand the mobile "9" variants
    so legacy 8-digit records still resolve.
    """

    def __init__(self, db=None):
        self.db = db or get_db()
        self.collection = self.db.collection("users")

    @staticmethod
    def _from_doc(doc) -> User:
        data = doc.to_dict() or {}
        data.setdefault("user_id", doc.id)
        return User(**data)

    def get(self, user_id: str) -> Optional[User]:
        doc = self.collection.document(user_id).get()
        if doc.exists:
            return self._from_doc(doc)
        return None

    def get_by_email(self, email: str) -> Optional[User]:
        target = (email or "").strip().lower()
        if not target:
            return None
        for doc in self.collection.where("email", "==", target).limit(1).stream():
            return self._from_doc(doc)
        return None

    def find_by_phone(self, phone: str) -> Optional[User]:
        wanted = sorted(phone_util.variants(phone)) or [phone_util.digits_only(phone)]
        if not wanted[0]:
            return None
        # "in" accepts up to 30 values; variants never exceed 2
        for doc in self.collection.where("phone", "in", wanted).limit(1).stream():
            return self._from_doc(doc)
        return None

    def list_users(self) -> List[User]:
        return [self._from_doc(doc) for doc in self.collection.stream()]

    def create(self, new_user: NewUser) -> User:
        email = new_user.email.strip().lower()
        if self.get_by_email(email) is not None:
            raise ValueError(f"email already registered: {email}")

        doc_ref = self.collection.document()
        password_hash = hash_password(new_user.temporary_password)
        user = User(
            user_id=doc_ref.id,
            name=new_user.name,
            email=email,
            phone=new_user.phone,
            created_at=datetime.now(timezone.utc),
            password_hash=password_hash,
        )
        data = user.model_dump()
        data["password_hash"] = password_hash
        doc_ref.set(data)
        logger.info("[USERS] Created %s via whatsapp", doc_ref.id)
        return user
