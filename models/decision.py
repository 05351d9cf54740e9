# models/decision.py
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from models.user import User


class DecisionOutcome(str, Enum):
    ROUTE = "route"
    IGNORE = "ignore"


class TargetAgent(str, Enum):
    CONTACTS = "contacts"          # registered user -> contact pipeline
    REGISTRATION = "registration"  # unknown number -> registration flow


class Decision(BaseModel):
    outcome: DecisionOutcome
    reason: str
    target_agent: Optional[TargetAgent] = None
    user: Optional[User] = None
