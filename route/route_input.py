# route/route_input.py
import logging
from typing import Optional

from dedupe.cache import IdempotencyCache, idempotency_cache
from models.decision import Decision, DecisionOutcome, TargetAgent
from models.input import InboundMessage
from store.base import UserStore

logger = logging.getLogger(__name__)


def route_input(payload: InboundMessage, users: UserStore, cache: Optional[IdempotencyCache] = None) -> Decision:
    cache = cache or idempotency_cache

    # 0) Idempotency hard stop via cache
    if payload.message_id and cache.check_and_mark(payload.message_id):
        logger.info("duplicate message %s ignored", payload.message_id)
        return Decision(outcome=DecisionOutcome.IGNORE, reason="duplicate")

    if not (payload.text or "").strip() and payload.audio_key is None:
        return Decision(outcome=DecisionOutcome.IGNORE, reason="empty")

    # 1) known sender (any 8/9-digit variant of the phone) -> contacts
    user = users.find_by_phone(payload.phone)
    if user is not None:
        if user.status != "active":
            return Decision(outcome=DecisionOutcome.IGNORE, reason="inactive user")
        return Decision(
            outcome=DecisionOutcome.ROUTE,
            reason="registered user",
            target_agent=TargetAgent.CONTACTS,
            user=user,
        )

    # 2) unknown number -> registration
    return Decision(
        outcome=DecisionOutcome.ROUTE,
        reason="unknown number",
        target_agent=TargetAgent.REGISTRATION,
    )
