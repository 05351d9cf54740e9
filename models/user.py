#models/user.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    user_id: str
    name: str
    email: str
    phone: str  # canonical digits
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Time the user was created. auto-generated."
    )
    status: Literal["active", "inactive"] = "active"
    role: Literal["USER", "ADMIN"] = "USER"
    password_hash: Optional[str] = Field(None, exclude=True)
    source: str = "whatsapp"


class NewUser(BaseModel):
    """What the registration flow hands to the user store on completion."""
    name: str
    email: str
    phone: str
    temporary_password: str = Field(repr=False)
