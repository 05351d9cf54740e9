# agent/intent_classifier.py
from __future__ import annotations

import logging
import re
from typing import Optional

from agent.llm_client import InferenceNotConfigured, TextInferenceClient
from agent.prompts import INTENT_CLASSIFICATION_PROMPT, QUERY_SUBJECT_PROMPT
from models.intent import MessageIntent
from observability.obs import safe_update_current_span_io, span_step
from observability.telemetry import mark_error

logger = logging.getLogger(__name__)

# Greetings / acknowledgments that never carry contact data.
GREETINGS = frozenset({
    "oi", "olá", "ola", "opa", "e aí", "eai", "e ai", "hey", "hi", "hello",
    "bom dia", "boa tarde", "boa noite", "tudo bem", "tudo bom", "como vai",
    "fala", "salve", "eae", "oie", "oii", "oiii", "olar", "hola",
    "obrigado", "obrigada", "valeu", "vlw", "thanks", "brigado", "brigada",
    "ok", "blz", "beleza", "certo", "entendi", "show", "top", "massa",
    "sim", "não", "nao", "yes", "no", "yep", "nope",
})

GREETING_MAX_WORDS = 3

_PUNCT = re.compile(r"[!?.,;:]+")
_SPACES = re.compile(r"\s+")


def normalize_utterance(text: Optional[str]) -> str:
    s = _PUNCT.sub("", (text or "").lower().strip())
    return _SPACES.sub(" ", s).strip()


def is_greeting(text: Optional[str]) -> bool:
    """Exact greeting, or up to three words starting with one ("oi tudo bem", "bom dia pessoal")."""
    normalized = normalize_utterance(text)
    if not normalized:
        return False
    if normalized in GREETINGS:
        return True

    words = normalized.split(" ")
    if len(words) > GREETING_MAX_WORDS:
        return False
    # one- and two-word greeting prefixes
    return words[0] in GREETINGS or " ".join(words[:2]) in GREETINGS


class IntentClassifier:
    def __init__(self, client: Optional[TextInferenceClient], *, min_length: int = 10):
        self.client = client
        self.min_length = min_length

    def _require_client(self) -> TextInferenceClient:
        if self.client is None:
            raise InferenceNotConfigured("text inference is not configured")
        return self.client

    def classify(self, text: str) -> MessageIntent:
        if is_greeting(text):
            logger.info("intent: greeting short-circuit")
            return MessageIntent.OTHER

        if len((text or "").strip()) < self.min_length:
            logger.info("intent: message too short for contact data")
            return MessageIntent.OTHER

        with span_step("intent_classifier", kind="node", node="intent_classifier") as s:
            try:
                token = self._require_client().classify(
                    INTENT_CLASSIFICATION_PROMPT, text, temperature=0.1, max_tokens=20
                )
            except Exception as e:
                logger.warning("intent classification failed, defaulting to other: %s", e)
                mark_error(e, kind="LLMError.intent", span=s)
                return MessageIntent.OTHER

            intent = MessageIntent.parse(token)
            if intent.value != (token or "").strip().lower():
                logger.info("intent: unexpected token %r -> %s", token, intent.value)
            safe_update_current_span_io(output={"intent": intent.value})
            return intent

    def extract_query_subject(self, text: str) -> Optional[str]:
        """Name or topic being asked about ("quem é o João?" -> "João"); None when unknown."""
        with span_step("query_subject", kind="node", node="query_subject") as s:
            try:
                raw = self._require_client().classify(
                    QUERY_SUBJECT_PROMPT, text, temperature=0.1, max_tokens=50
                )
            except Exception as e:
                logger.warning("query subject extraction failed: %s", e)
                mark_error(e, kind="LLMError.query_subject", span=s)
                return None

            subject = (raw or "").strip().strip("\"'").strip()
            if not subject or subject.lower() == "null":
                return None
            return subject
