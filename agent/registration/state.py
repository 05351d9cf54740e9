# agent/registration/state.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, TypedDict

from models.extraction import RegistrationTurnResult
from models.registration_flow import RegistrationFlow
from models.user import User


class RegistrationState(TypedDict, total=False):
    """
    One inbound message against one registration flow.

    - flow: the persisted flow, mutated in place by the nodes
    - text: the inbound message
    - mode: "conversational" (inference each turn) or "step" (one field per turn)
    - phone_formatted: display form of the sender phone, used in prompts
    - turn: inference result of this turn (conversational mode only)
    - reply: text to send back; every run ends with one
    - user: the created user when this turn completed the flow
    """
    flow: RegistrationFlow
    text: str
    now: datetime
    mode: Literal["conversational", "step"]
    phone_formatted: str

    turn: Optional[RegistrationTurnResult]
    reply: Optional[str]
    user: Optional[User]
