"""Fuzzy match scoring and ranking over a directory snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .models import ContactRecord, FuzzySearchResult, MatchType

EMAIL_WEIGHT = 0.9
PHONE_WEIGHT = 0.8
SUBSEQUENCE_CEILING = 0.3


@dataclass(frozen=True)
class MatchThresholds:
    """Minimum raw scores a field must reach before it is weighted and kept."""

    name: float = 0.3
    email: float = 0.3
    phone: float = 0.5


DEFAULT_THRESHOLDS = MatchThresholds()


def _email_parts(value: str) -> tuple[str, str] | None:
    if value.count("@") != 1:
        return None
    local, domain = value.split("@", maxsplit=1)
    return local, domain


def _email_score(query: str, target: str) -> float:
    query_parts = _email_parts(query)
    target_parts = _email_parts(target)
    if query_parts is None or target_parts is None:
        return 0.0
    query_local, query_domain = query_parts
    target_local, target_domain = target_parts
    if query_domain and target_domain.endswith(query_domain):
        return 0.5
    if query_local and query_local in target_local:
        return 0.5
    return 0.0


def _subsequence_score(query: str, target: str) -> float:
    if not target:
        return 0.0
    position = 0
    for char in target:
        if position < len(query) and char == query[position]:
            position += 1
    if position != len(query):
        return 0.0
    return SUBSEQUENCE_CEILING * (position / len(target))


def score(query: str, target: str) -> float:
    """Score how well ``query`` matches ``target`` on a 0..1 scale.

    Rules are checked from strongest to weakest and the first hit wins:
    exact, prefix, word prefix, substring, word substring, email domain or
    local part, then an ordered character subsequence scaled by length.
    """
    search = query.lower()
    text = target.lower()
    if search == text:
        return 1.0
    if text.startswith(search):
        return 0.9

    words = text.split()
    if any(word.startswith(search) for word in words):
        return 0.8
    if search in text:
        return 0.7
    if any(search in word for word in words):
        return 0.6

    email = _email_score(search, text)
    if email:
        return email

    return _subsequence_score(search, text)


def _best_field_match(
    query: str, values: Iterable[str], threshold: float
) -> tuple[float, str] | None:
    best: tuple[float, str] | None = None
    for value in values:
        raw = score(query, value)
        if raw < threshold:
            continue
        if best is None or raw > best[0]:
            best = (raw, value)
    return best


def best_match(
    record: ContactRecord, query: str, thresholds: MatchThresholds = DEFAULT_THRESHOLDS
) -> FuzzySearchResult | None:
    """Return the single highest weighted match for one record, if any clears its threshold."""
    candidates: list[tuple[float, MatchType, str]] = []

    name_score = score(query, record.name)
    if name_score >= thresholds.name:
        candidates.append((name_score, "name", record.name))

    email = _best_field_match(query, record.emails, thresholds.email)
    if email is not None:
        candidates.append((email[0] * EMAIL_WEIGHT, "email", email[1]))

    phone = _best_field_match(query, record.phones, thresholds.phone)
    if phone is not None:
        candidates.append((phone[0] * PHONE_WEIGHT, "phone", phone[1]))

    winner: tuple[float, MatchType, str] | None = None
    for candidate in candidates:
        if winner is None or candidate[0] > winner[0]:
            winner = candidate
    if winner is None:
        return None
    return FuzzySearchResult(
        contact=record, score=winner[0], match_type=winner[1], match_value=winner[2]
    )


def fuzzy_search(
    snapshot: Mapping[str, ContactRecord],
    query: str,
    max_results: int,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> list[FuzzySearchResult]:
    """Rank every record in ``snapshot`` against ``query``, one result per contact."""
    results = [
        match
        for match in (best_match(record, query, thresholds) for record in snapshot.values())
        if match is not None
    ]
    results.sort(key=lambda item: item.score, reverse=True)
    return results[:max_results]


def email_contains(record: ContactRecord, query: str) -> bool:
    """Strict email rule: case-insensitive substring containment only."""
    needle = query.lower()
    return any(needle in email.lower() for email in record.emails)
