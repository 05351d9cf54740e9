# agent/entity_extractor.py
"""
Free text -> structured contact fields, via the text-inference collaborator.

Every public method returns a tagged result and never raises past this module:
model errors, invalid JSON and schema violations all come back as a *Failure with
the raw response kept for diagnostics.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agent.intent_classifier import is_greeting, normalize_utterance
from agent.llm_client import InferenceNotConfigured, TextInferenceClient
from agent.prompts import (
    CONNECTIONS_EXTRACTION_PROMPT,
    CONTACT_EXTRACTION_PROMPT,
    REGISTRATION_RESPONSE_PROMPT,
    render,
)
from models.contact import ExtractedContactData, MentionedConnectionData
from models.extraction import (
    ConnectionsExtractionFailure,
    ConnectionsExtractionResult,
    ConnectionsExtractionSuccess,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    RegistrationExtracted,
    RegistrationTurnFailure,
    RegistrationTurnResult,
    RegistrationTurnSuccess,
)
from observability.obs import safe_update_current_span_io, span_step
from observability.telemetry import mark_error
from shared import phone as phone_util

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_NAME_LENGTH = 2


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email.strip()))


def is_valid_contact_name(name: Optional[str]) -> bool:
    """Rejects names the model made up from conversational filler ("Oi", "Oi João")."""
    if not name:
        return False
    normalized = normalize_utterance(name)
    if len(normalized) < MIN_NAME_LENGTH:
        return False
    return not is_greeting(normalized)


def _canonical_phone_or_none(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    canonical = phone_util.normalize(raw)
    if canonical is None:
        logger.info("extracted phone could not be canonicalized; dropped")
    return canonical


def _clean_contact(data: ExtractedContactData) -> ExtractedContactData:
    changes: Dict[str, Any] = {"phone": _canonical_phone_or_none(data.phone)}
    if data.email and not is_valid_email(data.email):
        logger.info("extracted email is not valid; dropped")
        changes["email"] = None
    elif data.email:
        changes["email"] = data.email.strip().lower()
    return data.model_copy(update=changes)


class _ConnectionsPayload(BaseModel):
    contact: ExtractedContactData = Field(default_factory=ExtractedContactData)
    connections: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("contact", mode="before")
    @classmethod
    def _contact(cls, v):
        return v or {}

    @field_validator("connections", mode="before")
    @classmethod
    def _connections(cls, v):
        return v or []


class _RegistrationExtractedPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone_confirmed: Optional[bool] = Field(None, alias="phoneConfirmed")

    @field_validator("name", "email", mode="before")
    @classmethod
    def _blank(cls, v):
        if isinstance(v, str) and (not v.strip() or v.strip().lower() == "null"):
            return None
        return v


class _RegistrationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    extracted: _RegistrationExtractedPayload = Field(default_factory=_RegistrationExtractedPayload)
    is_complete: bool = Field(False, alias="isComplete")

    @field_validator("extracted", mode="before")
    @classmethod
    def _extracted(cls, v):
        return v or {}


class EntityExtractor:
    def __init__(self, client: Optional[TextInferenceClient]):
        self.client = client

    def _require_client(self) -> TextInferenceClient:
        if self.client is None:
            raise InferenceNotConfigured("text inference is not configured")
        return self.client

    # --- contact -----------------------------------------------------------

    def extract(self, text: str, *, require_name: bool = True) -> ExtractionResult:
        """
        Single-contact extraction. With require_name=False (updates to a known contact)
        a missing name is accepted, but a greeting posing as a name is still dropped.
        """
        with span_step("extract_contact", kind="node", node="extract_contact") as s:
            raw: Optional[str] = None
            try:
                raw = self._require_client().complete(CONTACT_EXTRACTION_PROMPT, text, temperature=0.3)
                if not raw:
                    return ExtractionFailure(reason="empty model response", raw_response=raw)
                data = ExtractedContactData.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("contact extraction returned invalid JSON: %s", e.errors()[:3])
                mark_error(e, kind="ParseError.extract", span=s)
                return ExtractionFailure(reason="invalid model output", raw_response=raw)
            except Exception as e:
                logger.warning("contact extraction failed: %s", e)
                mark_error(e, kind="LLMError.extract", span=s)
                return ExtractionFailure(reason=f"inference error: {e}", raw_response=raw or str(e))

            if not is_valid_contact_name(data.name):
                if require_name:
                    logger.warning("extraction rejected: invalid name %r", data.name)
                    return ExtractionFailure(reason="invalid or missing name", raw_response=raw)
                if data.name:
                    logger.info("ignoring invalid name %r in update", data.name)
                    data = data.model_copy(update={"name": None})

            data = _clean_contact(data)
            safe_update_current_span_io(output=data, redact=True)
            return ExtractionSuccess(data=data, raw_response=raw)

    def extract_with_connections(self, text: str) -> ConnectionsExtractionResult:
        """Primary subject plus zero or more people mentioned alongside it."""
        with span_step("extract_with_connections", kind="node", node="extract_with_connections") as s:
            raw: Optional[str] = None
            try:
                raw = self._require_client().complete(CONNECTIONS_EXTRACTION_PROMPT, text, temperature=0.3)
                if not raw:
                    return ConnectionsExtractionFailure(reason="empty model response", raw_response=raw)
                payload = _ConnectionsPayload.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("connections extraction returned invalid JSON: %s", e.errors()[:3])
                mark_error(e, kind="ParseError.extract_connections", span=s)
                return ConnectionsExtractionFailure(reason="invalid model output", raw_response=raw)
            except Exception as e:
                logger.warning("connections extraction failed: %s", e)
                mark_error(e, kind="LLMError.extract_connections", span=s)
                return ConnectionsExtractionFailure(reason=f"inference error: {e}", raw_response=raw or str(e))

            if not is_valid_contact_name(payload.contact.name):
                logger.warning("extraction rejected: invalid name %r", payload.contact.name)
                return ConnectionsExtractionFailure(reason="invalid or missing name", raw_response=raw)

            connections: List[MentionedConnectionData] = []
            for item in payload.connections:
                try:
                    conn = MentionedConnectionData.model_validate(item)
                except ValidationError:
                    logger.info("skipping mentioned connection without a usable name")
                    continue
                if not is_valid_contact_name(conn.name):
                    continue
                connections.append(conn.model_copy(update={"phone": _canonical_phone_or_none(conn.phone)}))

            contact = _clean_contact(payload.contact)
            logger.info("extracted contact with %d mentioned connection(s)", len(connections))
            safe_update_current_span_io(output={"contact": contact, "connections": len(connections)}, redact=True)
            return ConnectionsExtractionSuccess(contact=contact, connections=connections, raw_response=raw)

    # --- registration --------------------------------------------------------

    def registration_turn(
        self,
        text: str,
        *,
        history: Sequence[Dict[str, str]],
        known: RegistrationExtracted,
        phone_formatted: str,
    ) -> RegistrationTurnResult:
        """One conversational registration turn: reply text plus whatever fields the user volunteered."""
        prompt = render(
            REGISTRATION_RESPONSE_PROMPT,
            name=known.name,
            email=known.email,
            phoneConfirmed="sim" if known.phone_confirmed else "não",
            phoneFormatted=phone_formatted,
        )
        with span_step("registration_turn", kind="node", node="registration_turn") as s:
            raw: Optional[str] = None
            try:
                raw = self._require_client().complete(prompt, text, history=history, temperature=0.7, max_tokens=500)
                if not raw:
                    return RegistrationTurnFailure(reason="empty model response", raw_response=raw)
                payload = _RegistrationPayload.model_validate_json(raw)
            except ValidationError as e:
                logger.warning("registration turn returned invalid JSON: %s", e.errors()[:3])
                mark_error(e, kind="ParseError.registration", span=s)
                return RegistrationTurnFailure(reason="invalid model output", raw_response=raw)
            except Exception as e:
                logger.warning("registration turn failed: %s", e)
                mark_error(e, kind="LLMError.registration", span=s)
                return RegistrationTurnFailure(reason=f"inference error: {e}", raw_response=raw or str(e))

            ex = payload.extracted
            name = ex.name if is_valid_contact_name(ex.name) else None
            email = ex.email.strip().lower() if is_valid_email(ex.email) else None
            return RegistrationTurnSuccess(
                response=payload.response.strip(),
                extracted=RegistrationExtracted(name=name, email=email, phone_confirmed=ex.phone_confirmed),
                is_complete=payload.is_complete,
                raw_response=raw,
            )

