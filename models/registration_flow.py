# models/registration_flow.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from shared.time import ensure_aware_utc, utcnow


class RegistrationStep(str, Enum):
    CONVERSATION = "CONVERSATION"
    AWAITING_NAME = "AWAITING_NAME"
    AWAITING_PHONE_CONFIRMATION = "AWAITING_PHONE_CONFIRMATION"
    AWAITING_EMAIL = "AWAITING_EMAIL"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


TERMINAL_STEPS = frozenset({RegistrationStep.COMPLETED, RegistrationStep.ABANDONED})


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class FlowExtractedData(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone_confirmed: bool = False


class RegistrationFlow(BaseModel):
    phone: str  # key; canonical when possible
    step: RegistrationStep = RegistrationStep.CONVERSATION
    name: Optional[str] = None
    email: Optional[str] = None
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    extracted_data: FlowExtractedData = Field(default_factory=FlowExtractedData)
    attempts_count: int = 0
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_message_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return ensure_aware_utc(self.expires_at) <= (now or utcnow())

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return not self.is_terminal and not self.is_expired(now)

    def add_message(self, role: str, content: str) -> None:
        self.conversation_history.append(ConversationMessage(role=role, content=content))
