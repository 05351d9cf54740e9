# store/registration_flow_store.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from db.base import get_db
from models.registration_flow import RegistrationFlow, RegistrationStep

logger = logging.getLogger(__name__)

_OPEN_STEPS = [
    s.value for s in RegistrationStep
    if s not in (RegistrationStep.COMPLETED, RegistrationStep.ABANDONED)
]


class FirestoreRegistrationFlowStore:
    """registration_flows/{phone}: one document per phone, overwritten on every turn."""

    def __init__(self, db=None):
        self.db = db or get_db()
        self.collection = self.db.collection("registration_flows")

    def get(self, phone: str) -> Optional[RegistrationFlow]:
        snap = self.collection.document(phone).get()
        if snap.exists:
            return RegistrationFlow(**(snap.to_dict() or {}))
        return None

    def save(self, flow: RegistrationFlow) -> None:
        self.collection.document(flow.phone).set(flow.model_dump(mode="json"))

    def list_open_expired(self, now: datetime) -> List[RegistrationFlow]:
        # expires_at is stored as ISO text; filter in memory after the step query
        docs = self.collection.where("step", "in", _OPEN_STEPS).stream()
        flows = [RegistrationFlow(**(d.to_dict() or {})) for d in docs]
        return [f for f in flows if f.is_expired(now)]
