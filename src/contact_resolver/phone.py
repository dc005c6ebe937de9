"""Phone number canonicalization for equality checks.

Two phone strings are considered the same number when their normalized sets
intersect. The only country-aware rule is the North American one: a
``+1``-prefixed 12 character form and a bare 10 digit form are treated as
equivalent. Other country codes are compared literally; this is a known
limitation, not something to paper over with guesses.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_NON_DIGIT_RE = re.compile(r"\D")


def clean_phone(raw: str | None) -> str:
    """Keep digits plus a leading ``+``; return an empty string if no digits remain."""
    if not raw:
        return ""
    value = raw.strip()
    digits = _NON_DIGIT_RE.sub("", value)
    if not digits:
        return ""
    return f"+{digits}" if value.startswith("+") else digits


def normalize_phone(raw: str | None) -> frozenset[str]:
    """Return every canonical form of ``raw`` used for equality comparison."""
    cleaned = clean_phone(raw)
    if not cleaned:
        return frozenset()

    forms = {cleaned}
    if cleaned.startswith("+1") and len(cleaned) == 12:
        forms.add(cleaned[2:])
    if not cleaned.startswith("+"):
        if len(cleaned) == 10:
            forms.add(f"+1{cleaned}")
        forms.add(f"+{cleaned}")
    return frozenset(forms)


def phones_match(left: str | None, right: str | None) -> bool:
    """Return True when both strings normalize to at least one shared form."""
    return not normalize_phone(left).isdisjoint(normalize_phone(right))


def any_phone_matches(candidates: frozenset[str], phones: Iterable[str]) -> str | None:
    """Return the first phone whose normalized forms intersect ``candidates``."""
    for phone in phones:
        if not candidates.isdisjoint(normalize_phone(phone)):
            return phone
    return None
