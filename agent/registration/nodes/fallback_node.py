# agent/registration/nodes/fallback_node.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agent.registration import messages
from agent.registration.rules import STEP_FOR_FIELD, fallback_threshold, missing_field, prompt_for
from shared.config import RegistrationSettings

if TYPE_CHECKING:
    from agent.registration.state import RegistrationState

logger = logging.getLogger(__name__)


def make_fallback_node(settings: RegistrationSettings):
    def fallback(state: "RegistrationState") -> "RegistrationState":
        """
        Escape hatch after inference. A field still missing after its attempt threshold
        gets a direct question and the next answer is parsed without inference. A failed
        inference call gets the deterministic question for the missing field.
        """
        flow = state["flow"]
        field = missing_field(flow)
        if field is None:
            return state

        if flow.attempts_count >= fallback_threshold(field, settings):
            logger.info("registration fallback: %s still missing after %d attempt(s)", field, flow.attempts_count)
            flow.step = STEP_FOR_FIELD[field]
            state["reply"] = prompt_for(field, state["phone_formatted"])
        elif not state.get("reply"):
            first_turn = flow.attempts_count == 1
            state["reply"] = messages.WELCOME if field == "name" and first_turn else prompt_for(field, state["phone_formatted"])
        return state

    return fallback
