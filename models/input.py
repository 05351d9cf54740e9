# models/input.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """One WhatsApp message, already unwrapped from the provider payload."""
    message_id: Optional[str] = None
    phone: str                        # sender, digits as received
    text: str = ""                    # empty for voice notes until transcribed
    audio_key: Optional[Dict[str, Any]] = None   # provider message key of a voice note
    push_name: Optional[str] = None   # WhatsApp display name
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_audio(self) -> bool:
        return self.audio_key is not None and not self.text.strip()
