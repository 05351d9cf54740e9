# agent/registration/nodes/finalize_node.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from agent.registration import messages
from agent.registration.rules import clear_email, generate_temporary_password, missing_field, prompt_for
from models.registration_flow import RegistrationStep
from models.user import NewUser
from observability.obs import span_step
from shared import phone as phone_util
from store.base import UserStore

if TYPE_CHECKING:
    from agent.registration.state import RegistrationState

logger = logging.getLogger(__name__)

PASSWORD_MASK = "********"


def _complete(state: "RegistrationState", users: UserStore) -> Optional[str]:
    """Completes the flow or clears a taken email. Returns the reply as it goes into history."""
    flow = state["flow"]
    data = flow.extracted_data
    email = data.email.strip().lower()

    with span_step("registration_complete", kind="node", node="registration_complete"):
        if users.get_by_email(email) is not None:
            logger.info("registration email already in use; asking for another")
            clear_email(flow)
            state["reply"] = messages.EMAIL_TAKEN
            return None

        phone = phone_util.normalize(flow.phone) or phone_util.digits_only(flow.phone)
        password = generate_temporary_password()
        try:
            user = users.create(NewUser(name=data.name, email=email, phone=phone, temporary_password=password))
        except ValueError:
            # lost a race with another signup using the same email
            logger.info("registration email taken at creation time; asking for another")
            clear_email(flow)
            state["reply"] = messages.EMAIL_TAKEN
            return None

        flow.step = RegistrationStep.COMPLETED
        flow.user_id = user.user_id
        flow.email = email
        state["user"] = user
        state["reply"] = messages.COMPLETED.format(name=data.name, email=email, password=password)
        logger.info("user %s created via whatsapp registration", user.user_id)
        # the temporary password is sent once and never persisted in the history
        return messages.COMPLETED.format(name=data.name, email=email, password=PASSWORD_MASK)


def make_finalize_node(users: UserStore):
    def finalize(state: "RegistrationState") -> "RegistrationState":
        flow = state["flow"]
        logged = None
        if missing_field(flow) is None:
            logged = _complete(state, users)

        if not state.get("reply"):
            state["reply"] = prompt_for(missing_field(flow) or "email", state["phone_formatted"])

        flow.add_message("assistant", logged or state["reply"])
        return state

    return finalize

