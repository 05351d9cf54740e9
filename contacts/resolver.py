# contacts/resolver.py
"""
Does a name / query refer to one of the owner's contacts, to someone a contact
mentioned (bridge), or to nobody we know?

Search order, first hit wins:
  1. normalized-name direct match (exact, containment or similarity >= direct threshold)
  2. semantic search over contact embeddings (only with an embedding client)
  3. case-insensitive substring over name/company/position/context/notes
  4. mentioned connections of the owner's contacts (bridge)
  5. nothing: ranked "did you mean" suggestions
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple, Union

from agent.llm_client import EmbeddingClient
from models.contact import Contact, ExtractedContactData, MentionedConnection
from models.resolution import BridgeMatch, MatchSource, ResolutionKind, ResolutionResult, Suggestion
from observability.obs import safe_update_current_span_io, span_step
from observability.telemetry import mark_error
from shared import phone as phone_util
from shared.config import MatchThresholds
from shared.names import normalize_name, rank_suggestions, similarity
from store.base import ContactStore

logger = logging.getLogger(__name__)

# "o que sabe sobre a Maria", "quem é João" -> the name part
_QUESTION_SUBJECT = re.compile(r"\b(?:sobre|quem\s+[eé])\s+(?:(?:o|a)\s+)?(.+)", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[?!.,;:]+$")

TEXT_SEARCH_FIELDS = ("name", "company", "position", "context", "notes")

# containment on very short strings matches almost anything
MIN_CONTAINMENT_LENGTH = 3


def subject_from_question(query: str) -> str:
    q = (query or "").strip()
    m = _QUESTION_SUBJECT.search(q)
    if m:
        q = m.group(1)
    return _TRAILING_PUNCT.sub("", q).strip()


def name_match_score(query: str, name: str, direct_threshold: float) -> Optional[float]:
    """Score when `name` counts as a direct match for `query`, else None."""
    nq, nn = normalize_name(query), normalize_name(name)
    if not nq or not nn:
        return None
    if nq == nn:
        return 1.0
    if nq in nn or nn in nq:
        if min(len(nq), len(nn)) >= MIN_CONTAINMENT_LENGTH:
            return similarity(query, name)
        return None
    score = similarity(query, name)
    return score if score >= direct_threshold else None


def _contains_ci(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.casefold()


class ContactResolver:
    def __init__(
        self,
        store: ContactStore,
        embeddings: Optional[EmbeddingClient] = None,
        thresholds: Optional[MatchThresholds] = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.thresholds = thresholds or MatchThresholds()

    # --- individual steps ---------------------------------------------------

    def direct_matches(self, query: str, contacts: List[Contact]) -> List[Tuple[Contact, float]]:
        scored: List[Tuple[Contact, float]] = []
        for c in contacts:
            score = name_match_score(query, c.name, self.thresholds.direct)
            if score is not None:
                scored.append((c, score))
        # stable: ties keep store order (oldest first)
        scored.sort(key=lambda t: t[1], reverse=True)
        return scored

    def find_by_name_normalized(self, owner_id: str, name: str) -> Optional[Contact]:
        """Best direct name match among the owner's contacts, or None."""
        query = subject_from_question(name)
        if not query:
            return None
        matches = self.direct_matches(query, self.store.list_contacts(owner_id))
        return matches[0][0] if matches else None

    def semantic_matches(self, owner_id: str, query: str) -> List[Tuple[Contact, float]]:
        if self.embeddings is None:
            return []
        with span_step("semantic_search", kind="retrieval") as s:
            try:
                vector = self.embeddings.embed(query)
            except Exception as e:
                logger.warning("semantic search skipped: %s", e)
                mark_error(e, kind="EmbeddingError.search", span=s)
                return []
            results = self.store.semantic_search(owner_id, vector, limit=5)
            return [(c, score) for c, score in results if score > self.thresholds.semantic]

    @staticmethod
    def text_matches(query: str, contacts: List[Contact]) -> List[Contact]:
        needle = query.casefold()
        return [
            c for c in contacts
            if any(_contains_ci(getattr(c, f), needle) for f in TEXT_SEARCH_FIELDS)
        ]

    def bridge_matches(self, query: str, contacts: List[Contact]) -> List[BridgeMatch]:
        if not contacts:
            return []
        by_id = {c.id: c for c in contacts}
        needle = query.casefold()
        out: List[BridgeMatch] = []
        for m in self.store.list_mentions(by_id.keys()):
            if self._mention_matches(needle, query, m):
                out.append(BridgeMatch(connection=m, mentioned_by=by_id[m.contact_id]))
        return out

    def _mention_matches(self, needle: str, query: str, m: MentionedConnection) -> bool:
        if _contains_ci(m.name, needle) or _contains_ci(m.description, needle):
            return True
        if any(t.casefold() == needle for t in m.tags):
            return True
        return name_match_score(query, m.name, self.thresholds.direct) is not None

    def suggestions(self, query: str, contacts: List[Contact]) -> List[Suggestion]:
        ranked = rank_suggestions(
            query,
            (c.name for c in contacts),
            threshold=self.thresholds.suggestion,
            limit=self.thresholds.suggestion_limit,
        )
        return [Suggestion(name=n, score=round(s, 3)) for n, s in ranked]

    # --- entry points -------------------------------------------------------

    def search(self, owner_id: str, query: str) -> ResolutionResult:
        """Free-text lookup ("quem é o João?", "advogado")."""
        return self._traced_search(owner_id, subject_from_question(query))

    def _traced_search(self, owner_id: str, subject: str) -> ResolutionResult:
        with span_step("contact_search", kind="node", node="contact_search"):
            result = self._search(owner_id, subject)
            safe_update_current_span_io(output={
                "kind": result.kind.value,
                "source": result.source.value if result.source else None,
                "hits": len(result.contacts) + len(result.bridges),
            })
            return result

    def resolve(self, owner_id: str, extracted: Union[ExtractedContactData, str]) -> ResolutionResult:
        """
        Resolution for extracted data. A canonical phone, when present, is tried first
        since phone is the primary dedup key; then the same order as search() on the name.
        """
        if isinstance(extracted, str):
            return self.search(owner_id, extracted)

        canonical = phone_util.normalize(extracted.phone)
        if canonical:
            hit = self.store.find_by_phone(owner_id, phone_util.variants(canonical))
            if hit is not None:
                return ResolutionResult(
                    kind=ResolutionKind.DIRECT, query=extracted.name or canonical,
                    source=MatchSource.PHONE,
                    contacts=[hit], similarity=1.0,
                )
        # an extracted name is already a name, not a question
        return self._traced_search(owner_id, (extracted.name or "").strip())

    def _search(self, owner_id: str, query: str) -> ResolutionResult:
        if not query:
            return ResolutionResult.none(query)

        contacts = self.store.list_contacts(owner_id)
        if not contacts:
            return ResolutionResult.none(query)

        direct = self.direct_matches(query, contacts)
        if direct:
            return ResolutionResult(
                kind=ResolutionKind.DIRECT, query=query, source=MatchSource.NAME,
                contacts=[c for c, _ in direct], similarity=direct[0][1],
            )

        semantic = self.semantic_matches(owner_id, query)
        if semantic:
            return ResolutionResult(
                kind=ResolutionKind.DIRECT, query=query, source=MatchSource.SEMANTIC,
                contacts=[c for c, _ in semantic], similarity=semantic[0][1],
            )

        text = self.text_matches(query, contacts)
        if text:
            return ResolutionResult(kind=ResolutionKind.DIRECT, query=query, source=MatchSource.TEXT, contacts=text)

        bridges = self.bridge_matches(query, contacts)
        if bridges:
            return ResolutionResult(kind=ResolutionKind.BRIDGE, query=query, source=MatchSource.MENTION, bridges=bridges)

        logger.info("no match for query among %d contact(s)", len(contacts))
        return ResolutionResult.none(query, self.suggestions(query, contacts))
