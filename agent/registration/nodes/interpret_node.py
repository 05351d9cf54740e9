# agent/registration/nodes/interpret_node.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agent.entity_extractor import EntityExtractor
from agent.registration.rules import set_email, set_name
from models.extraction import RegistrationExtracted

if TYPE_CHECKING:
    from agent.registration.state import RegistrationState

logger = logging.getLogger(__name__)


def make_interpret_node(extractor: EntityExtractor):
    def interpret(state: "RegistrationState") -> "RegistrationState":
        """
        Conversational turn: the model writes the reply and reports whatever fields the
        user volunteered. Already-known name is kept; a newly given email replaces the
        previous one (users correct typos); phone confirmation only ever turns on.
        """
        flow = state["flow"]
        data = flow.extracted_data
        known = RegistrationExtracted(name=data.name, email=data.email, phone_confirmed=data.phone_confirmed)

        # the current message is the last history entry and goes in as `text`
        history = [m.model_dump() for m in flow.conversation_history[:-1]]
        turn = extractor.registration_turn(
            state["text"],
            history=history,
            known=known,
            phone_formatted=state["phone_formatted"],
        )
        state["turn"] = turn

        if not turn.success:
            logger.warning("registration inference failed, using deterministic prompt: %s", turn.reason)
            return state

        ex = turn.extracted
        if ex.name and not data.name:
            set_name(flow, ex.name)
        if ex.phone_confirmed and data.name:
            data.phone_confirmed = True
        if ex.email:
            set_email(flow, ex.email)

        state["reply"] = turn.response or None
        return state

    return interpret
