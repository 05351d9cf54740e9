# agent/registration/service.py
"""
Registration of unknown WhatsApp numbers.

At most one active flow per phone: a flow is active until it is COMPLETED, ABANDONED
or past expires_at. A message from a phone with no active flow starts a new one,
replacing whatever stale record was stored under that phone.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from agent.entity_extractor import EntityExtractor
from agent.registration import messages
from agent.registration.graph import build_registration_graph
from agent.registration.state import RegistrationState
from models.registration_flow import FlowExtractedData, RegistrationFlow, RegistrationStep
from observability.obs import safe_update_current_span_io, span_step
from shared import phone as phone_util
from shared.config import RegistrationSettings
from shared.time import utcnow
from store.base import RegistrationFlowStore, UserStore

logger = logging.getLogger(__name__)


def flow_key(phone: str) -> str:
    return phone_util.normalize(phone) or phone_util.digits_only(phone)


class RegistrationService:
    def __init__(
        self,
        flows: RegistrationFlowStore,
        users: UserStore,
        extractor: EntityExtractor,
        settings: Optional[RegistrationSettings] = None,
    ):
        self.flows = flows
        self.users = users
        self.settings = settings or RegistrationSettings()
        self.app = build_registration_graph(extractor, users, self.settings).compile()

    # --- lookup --------------------------------------------------------------

    def get_active_flow(self, phone: str) -> Optional[RegistrationFlow]:
        flow = self.flows.get(flow_key(phone))
        if flow is None or not flow.is_active(utcnow()):
            return None
        return flow

    # --- lifecycle -----------------------------------------------------------

    def _new_flow(self, phone: str) -> RegistrationFlow:
        now = utcnow()
        step_mode = self.settings.mode == "step"
        return RegistrationFlow(
            phone=flow_key(phone),
            step=RegistrationStep.AWAITING_NAME if step_mode else RegistrationStep.CONVERSATION,
            # the rigid variant registers the sender number as-is
            extracted_data=FlowExtractedData(phone_confirmed=step_mode),
            created_at=now,
            last_message_at=now,
            expires_at=now + timedelta(hours=self.settings.flow_ttl_hours),
        )

    def start_flow(self, phone: str) -> str:
        """Creates a fresh flow and returns the welcome text to send."""
        flow = self._new_flow(phone)
        flow.add_message("assistant", messages.WELCOME)
        self.flows.save(flow)
        logger.info("registration flow started (%s mode)", self.settings.mode)
        return messages.WELCOME

    def handle_message(self, phone: str, text: str) -> str:
        """Runs one turn and returns the reply. The flow is saved before returning."""
        with span_step("registration_flow", kind="node", node="registration_flow", mode=self.settings.mode):
            flow = self.get_active_flow(phone)
            if flow is None:
                if self.settings.mode == "step":
                    return self.start_flow(phone)
                flow = self._new_flow(phone)
                logger.info("registration flow started (conversational mode)")

            state: RegistrationState = {
                "flow": flow,
                "text": text,
                "now": utcnow(),
                "mode": self.settings.mode,
                "phone_formatted": phone_util.format_phone(flow.phone),
            }
            result = self.app.invoke(state)

            flow = result["flow"]
            self.flows.save(flow)
            safe_update_current_span_io(output={
                "step": flow.step.value,
                "attempts": flow.attempts_count,
                "completed": flow.step == RegistrationStep.COMPLETED,
            })
            return result["reply"]

    def expire_stale_flows(self) -> int:
        """Marks every open flow past its expiry as ABANDONED. Run periodically."""
        now = utcnow()
        expired = 0
        for flow in self.flows.list_open_expired(now):
            if flow.is_terminal or not flow.is_expired(now):
                continue
            flow.step = RegistrationStep.ABANDONED
            self.flows.save(flow)
            expired += 1
        if expired:
            logger.info("registration expiry sweep abandoned %d flow(s)", expired)
        return expired
