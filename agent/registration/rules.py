# agent/registration/rules.py
"""Deterministic pieces of the registration flow: what is missing, what to ask, how to parse."""
from __future__ import annotations

import secrets
from typing import Literal, Optional

from agent.entity_extractor import is_valid_contact_name, is_valid_email
from agent.intent_classifier import normalize_utterance
from agent.registration import messages
from models.registration_flow import RegistrationFlow, RegistrationStep
from shared.config import RegistrationSettings

Field = Literal["name", "phone", "email"]

MIN_REGISTRATION_NAME_LENGTH = 3
TEMPORARY_PASSWORD_LENGTH = 8

AFFIRMATIVE = frozenset({
    "sim", "s", "isso", "isso mesmo", "correto", "certo", "exato", "confirmo",
    "confirmado", "ok", "okay", "pode ser", "positivo", "esse mesmo", "é esse", "yes",
})
NEGATIVE = frozenset({"não", "nao", "n", "errado", "incorreto", "negativo", "no"})

STEP_FOR_FIELD = {
    "name": RegistrationStep.AWAITING_NAME,
    "phone": RegistrationStep.AWAITING_PHONE_CONFIRMATION,
    "email": RegistrationStep.AWAITING_EMAIL,
}
DIRECT_STEPS = frozenset(STEP_FOR_FIELD.values())


def missing_field(flow: RegistrationFlow) -> Optional[Field]:
    """First field still missing, in the order they are asked. None when ready to complete."""
    data = flow.extracted_data
    if not data.name:
        return "name"
    if not data.phone_confirmed:
        return "phone"
    if not is_valid_email(data.email):
        return "email"
    return None


def fallback_threshold(field: Field, settings: RegistrationSettings) -> int:
    if field == "name":
        return settings.name_fallback_attempts
    if field == "phone":
        return settings.phone_fallback_attempts
    return settings.email_fallback_attempts


def prompt_for(field: Field, phone_formatted: str) -> str:
    if field == "name":
        return messages.ASK_NAME
    if field == "phone":
        return messages.ASK_PHONE_CONFIRMATION.format(phone=phone_formatted)
    return messages.ASK_EMAIL


def _matches(text: str, vocabulary: frozenset) -> bool:
    t = normalize_utterance(text)
    if not t:
        return False
    words = t.split()
    return t in vocabulary or words[0] in vocabulary or " ".join(words[:2]) in vocabulary


def is_affirmative(text: str) -> bool:
    return _matches(text, AFFIRMATIVE)


def is_negative(text: str) -> bool:
    return _matches(text, NEGATIVE)


def parse_name(text: str) -> Optional[str]:
    name = " ".join((text or "").split())
    if len(name) < MIN_REGISTRATION_NAME_LENGTH or not is_valid_contact_name(name):
        return None
    return name


def parse_email(text: str) -> Optional[str]:
    email = (text or "").strip().lower()
    return email if is_valid_email(email) else None


def set_name(flow: RegistrationFlow, name: str) -> None:
    flow.extracted_data.name = name
    flow.name = name


def set_email(flow: RegistrationFlow, email: str) -> None:
    flow.extracted_data.email = email
    flow.email = email


def clear_email(flow: RegistrationFlow) -> None:
    flow.extracted_data.email = None
    flow.email = None


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(TEMPORARY_PASSWORD_LENGTH)[:TEMPORARY_PASSWORD_LENGTH]
