# models/contact.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# Fields that feed the search embedding; touching any of them schedules regeneration.
SEARCHABLE_FIELDS = ("name", "company", "position", "location", "context", "notes")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Tag(BaseModel):
    id: str
    owner_id: str
    name: str
    slug: str
    color: Optional[str] = None


class Contact(BaseModel):
    id: str
    owner_id: str
    name: str
    phone: Optional[str] = Field(None, description="canonical digits, e.g. 5521987654321")
    email: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    location: Optional[str] = None
    context: Optional[str] = None
    notes: Optional[str] = None
    tag_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class MentionedConnection(BaseModel):
    """A person referenced by one of the owner's contacts. Never promoted to a Contact."""
    id: str
    contact_id: str
    name: str
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        if not v or v.lower() == "null":
            return None
    return v


class ExtractedContactData(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    context: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            f = float(v)
        except (TypeError, ValueError):
            return None
        return min(1.0, max(0.0, f))

    @field_validator("name", "company", "position", "phone", "email", "location", "context", mode="before")
    @classmethod
    def _strip(cls, v):
        return _blank_to_none(v)

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_as_text(cls, v):
        # models sometimes answer with a bare number
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]


class MentionedConnectionData(BaseModel):
    name: str
    about: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    phone: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("mentioned connection without name")
        return v

    @field_validator("about", "phone", mode="before")
    @classmethod
    def _strip(cls, v):
        if isinstance(v, int):
            v = str(v)
        return _blank_to_none(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]
