# agent/registration/nodes/step_input_node.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from agent.registration import messages
from agent.registration.rules import (
    STEP_FOR_FIELD,
    fallback_threshold,
    is_affirmative,
    is_negative,
    missing_field,
    parse_email,
    parse_name,
    prompt_for,
    set_email,
    set_name,
)
from models.registration_flow import RegistrationStep
from shared.config import RegistrationSettings

if TYPE_CHECKING:
    from agent.registration.state import RegistrationState

logger = logging.getLogger(__name__)


def make_step_input_node(settings: RegistrationSettings):
    def step_input(state: "RegistrationState") -> "RegistrationState":
        """
        Parses the message as the answer to the field currently asked, without inference.
        Used by the rigid variant on every turn and by the conversational variant once a
        field hit its fallback threshold.
        """
        flow = state["flow"]
        text = state["text"]
        field = missing_field(flow)
        accepted_name: Optional[str] = None

        if field == "name":
            name = parse_name(text)
            if name is None:
                state["reply"] = messages.NAME_TOO_SHORT
                return state
            set_name(flow, name)
            accepted_name = name

        elif field == "phone":
            if is_affirmative(text):
                flow.extracted_data.phone_confirmed = True
            else:
                template = messages.PHONE_NOT_CONFIRMED if is_negative(text) else messages.ASK_PHONE_CONFIRMATION
                state["reply"] = template.format(phone=state["phone_formatted"])
                return state

        elif field == "email":
            email = parse_email(text)
            if email is None:
                state["reply"] = messages.EMAIL_INVALID
                return state
            set_email(flow, email)

        nxt = missing_field(flow)
        if nxt is None:
            # finalize completes the flow
            return state

        if state["mode"] == "step" or flow.attempts_count >= fallback_threshold(nxt, settings):
            flow.step = STEP_FOR_FIELD[nxt]
        else:
            flow.step = RegistrationStep.CONVERSATION

        if nxt == "email" and accepted_name:
            state["reply"] = messages.NAME_ACCEPTED.format(first_name=accepted_name.split(" ")[0])
        else:
            state["reply"] = prompt_for(nxt, state["phone_formatted"])
        logger.info("registration step input accepted %s; next: %s", field, nxt)
        return state

    return step_input
