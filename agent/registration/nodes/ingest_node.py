# agent/registration/nodes/ingest_node.py
from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agent.registration.state import RegistrationState


def make_ingest_node(ttl_hours: int):
    def ingest(state: "RegistrationState") -> "RegistrationState":
        """
        Records the inbound message on the flow. Every message counts as an attempt
        and pushes expiry forward, so a flow expires after `ttl_hours` of silence.
        """
        flow = state["flow"]
        now = state["now"]

        flow.add_message("user", state["text"])
        flow.attempts_count += 1
        flow.last_message_at = now
        flow.expires_at = now + timedelta(hours=ttl_hours)

        state["turn"] = None
        state["reply"] = None
        state["user"] = None
        return state

    return ingest
