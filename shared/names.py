"""
Name normalization and similarity for Portuguese name variants.

normalize_name() is best-effort transliteration (diacritics + a small phonetic table),
not a general phonetic algorithm. similarity() is edit-distance based.
"""
import re
import unicodedata
from typing import Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

# Applied in order on the lowercased, diacritic-free name.
NAME_SUBSTITUTIONS: Sequence[Tuple[str, str]] = (
    (r"ph", "f"),
    (r"th(?=[aeiou])", "t"),
    (r"y", "i"),
    (r"w", "v"),
)

_COMPILED_SUBSTITUTIONS = [(re.compile(p), r) for p, r in NAME_SUBSTITUTIONS]
_WHITESPACE = re.compile(r"\s+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def normalize_name(name: Optional[str]) -> str:
    s = strip_diacritics((name or "").strip().casefold())
    for pattern, repl in _COMPILED_SUBSTITUTIONS:
        s = pattern.sub(repl, s)
    return _WHITESPACE.sub(" ", s).strip()


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    1.0 for identical normalized forms, 0.9 when one contains the other,
    otherwise 1 - levenshtein / max(len). Symmetric, in [0, 1].
    """
    na = normalize_name(a)
    nb = normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        return 0.9
    distance = Levenshtein.distance(na, nb)
    return 1.0 - distance / max(len(na), len(nb))


def is_name_match(a: Optional[str], b: Optional[str], threshold: float = 0.85) -> bool:
    return similarity(a, b) >= threshold


def rank_suggestions(
    query: str,
    names: Iterable[str],
    *,
    threshold: float = 0.6,
    limit: int = 5,
) -> List[Tuple[str, float]]:
    """
    "Did you mean" candidates: score >= threshold, exact (1.0) matches excluded,
    deduplicated by display name, best first.
    """
    scored: dict[str, float] = {}
    for name in names:
        if not name:
            continue
        score = similarity(query, name)
        if score >= 1.0 or score < threshold:
            continue
        if score > scored.get(name, -1.0):
            scored[name] = score

    ranked = sorted(scored.items(), key=lambda kv: (-kv[1], kv[0]))
    return ranked[:limit]


def slugify(name: Optional[str]) -> str:
    s = strip_diacritics((name or "").strip().lower())
    s = _WHITESPACE.sub("-", s)
    s = re.sub(r"[^a-z0-9-]", "", s)
    s = re.sub(r"-{2,}", "-", s)
    return s.strip("-")
