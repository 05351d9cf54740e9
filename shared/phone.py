"""
Phone canonicalization: Brazilian numbering rules under a configurable country code.

Canonical form: <country><area><subscriber>, digits only, e.g. 5521987654321
(mobile, 9-digit subscriber) or 552187654321 (landline / legacy 8-digit mobile).
This string is the join key between contacts, users and the network graph, so
every call site goes through this module instead of re-deriving the rules.
"""
import re
import logging
from typing import Optional

import phonenumbers

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "55"

# area code (2) + 8 or 9 digit subscriber, after the country code
AREA_CODE_LENGTH = 2
MIN_NATIONAL_LENGTH = 10
MAX_NATIONAL_LENGTH = 11

_NON_DIGITS = re.compile(r"\D")

# set once at startup from DEFAULT_COUNTRY_CODE
_country_code: str = DEFAULT_COUNTRY_CODE


def configure(country_code: str) -> None:
    global _country_code
    code = digits_only(country_code)
    if not code:
        raise ValueError(f"invalid country code: {country_code!r}")
    _country_code = code


def current_country_code() -> str:
    return _country_code


def digits_only(raw: Optional[str]) -> str:
    return _NON_DIGITS.sub("", raw or "")


def normalize(raw: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """
    Canonicalize any formatting variant (21987654321, +55 21 98765-4321, (021) 8765-4321 ...).
    Returns None when the input cannot be a valid number; never raises.
    """
    cc = country_code or _country_code
    min_length = len(cc) + MIN_NATIONAL_LENGTH
    max_length = len(cc) + MAX_NATIONAL_LENGTH

    cleaned = digits_only(raw)
    if not cleaned:
        return None

    if cleaned.startswith("0"):
        cleaned = cleaned[1:]

    already_prefixed = cleaned.startswith(cc) and min_length <= len(cleaned) <= max_length
    if not already_prefixed:
        cleaned = cc + cleaned

    if not (min_length <= len(cleaned) <= max_length):
        return None
    return cleaned


def is_valid(raw: Optional[str], country_code: Optional[str] = None) -> bool:
    return normalize(raw, country_code) is not None


def variants(raw: Optional[str], country_code: Optional[str] = None) -> set[str]:
    """
    Forms of the same number with and without the mobile "9" infix, so numbers stored
    in the 9-digit and in the legacy 8-digit format still meet. Empty set if invalid.
    """
    cc = country_code or _country_code
    canonical = normalize(raw, cc)
    if canonical is None:
        return set()

    # 55 21 [9]87654321
    mobile_index = len(cc) + AREA_CODE_LENGTH
    out = {canonical}
    if len(canonical) == len(cc) + MAX_NATIONAL_LENGTH:
        if canonical[mobile_index] == "9":
            out.add(canonical[:mobile_index] + canonical[mobile_index + 1:])
    else:
        out.add(canonical[:mobile_index] + "9" + canonical[mobile_index:])
    return out


def variants_of_many(values) -> set[str]:
    out: set[str] = set()
    for v in values:
        out |= variants(v)
    return out


def format_phone(raw: Optional[str]) -> str:
    """Display form (+55 21 98765-4321). Falls back to the raw input when not parseable."""
    canonical = normalize(raw)
    if canonical is None:
        return raw or ""
    try:
        parsed = phonenumbers.parse("+" + canonical, None)
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
    except phonenumbers.NumberParseException:
        logger.debug("format_phone: could not parse %s", canonical)
        return "+" + canonical
