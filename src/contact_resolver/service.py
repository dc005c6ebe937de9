"""Contact resolution: cache-first lookups over a slow directory source."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from tqdm import tqdm

from .cache import SNAPSHOT_KEY, CacheConfig, CacheStats, DirectoryCache, Snapshot
from .config import ResolverConfig
from .errors import AccessDeniedError, MalformedRecordError, TransientLookupError
from .models import (
    ContactListing,
    ContactRecord,
    DirectorySource,
    FuzzySearchResult,
    LivenessResult,
)
from .phone import any_phone_matches, normalize_phone
from .scoring import email_contains, fuzzy_search
from .validation import (
    escape_for_logging,
    validate_email_query,
    validate_max_results,
    validate_phone,
    validate_query,
)

PLAIN_SEARCH_LIMIT = 10


def build_snapshot(
    items: Iterable[Any], *, logger: logging.Logger, show_progress: bool = False
) -> dict[str, ContactRecord]:
    """Validate raw source items into a name-keyed snapshot, skipping bad ones."""
    snapshot: dict[str, ContactRecord] = {}
    skipped = 0
    iterator: Iterable[Any] = items
    if show_progress:
        iterator = tqdm(items, desc="indexing contacts", unit="contact")
    for item in iterator:
        try:
            record = ContactRecord.from_payload(item)
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning("Skipping malformed contact record: %s", exc)
            continue
        snapshot[record.name] = record
    if skipped:
        logger.info("Indexed %d contacts, skipped %d malformed records", len(snapshot), skipped)
    return snapshot


class ResolutionService:
    """Name, email and phone lookups backed by a shared DirectoryCache."""

    def __init__(
        self,
        *,
        source: DirectorySource,
        cache: DirectoryCache,
        config: ResolverConfig,
        logger: logging.Logger,
    ) -> None:
        self._source = source
        self._cache = cache
        self._config = config
        self._logger = logger

    async def _fetch_snapshot(self) -> Snapshot:
        self._logger.info("Fetching full contact directory")
        items = await self._source.fetch_all()
        snapshot = build_snapshot(
            items, logger=self._logger, show_progress=self._config.show_progress
        )
        if not snapshot:
            self._logger.warning("Directory returned no contacts; result will not be cached")
        return snapshot

    async def ensure_snapshot(self) -> Snapshot:
        """Return the cached directory, fetching it once if the cache is cold."""
        return await self._cache.get_or_fetch(self._fetch_snapshot, SNAPSHOT_KEY)

    async def search_by_name_or_text(
        self, query: str, max_results: int | None = None
    ) -> list[FuzzySearchResult]:
        term = validate_query(query)
        limit = validate_max_results(self._config.max_results if max_results is None else max_results)
        self._logger.info("Fuzzy search for %s", escape_for_logging(term))
        snapshot = await self.ensure_snapshot()
        results = fuzzy_search(snapshot, term, limit, self._config.thresholds)
        self._logger.info("Fuzzy search found %d results", len(results))
        return results

    async def search_contacts(self, query: str) -> list[ContactRecord]:
        results = await self.search_by_name_or_text(query, PLAIN_SEARCH_LIMIT)
        return [result.contact for result in results]

    async def find_numbers(self, name: str) -> list[str]:
        """Phone numbers of the best match for ``name``; empty when nobody matches."""
        contacts = await self.search_contacts(name)
        if not contacts:
            return []
        return list(contacts[0].phones)

    async def find_by_email(self, query: str, max_results: int | None = None) -> list[ContactRecord]:
        """Contacts with an email containing ``query``, in directory order."""
        needle = validate_email_query(query)
        if max_results is not None:
            validate_max_results(max_results)
        self._logger.info("Email search for %s", escape_for_logging(needle))
        snapshot = await self.ensure_snapshot()
        matches = [record for record in snapshot.values() if email_contains(record, needle)]
        self._logger.info("Email search found %d results", len(matches))
        return matches[:max_results] if max_results else matches

    def _scan_cached_phones(self, candidates: frozenset[str]) -> ContactRecord | None:
        snapshot = self._cache.get(SNAPSHOT_KEY)
        if snapshot is None:
            self._logger.debug("No cached contacts available for phone search")
            return None
        for record in snapshot.values():
            if any_phone_matches(candidates, record.phones) is not None:
                return record
        return None

    async def _targeted_phone_lookup(self, candidates: frozenset[str]) -> ContactRecord | None:
        lookup = getattr(self._source, "fetch_one_matching_phone", None)
        if not callable(lookup):
            self._logger.debug("Source has no targeted phone lookup")
            return None
        try:
            raw = await lookup(sorted(candidates))
        except TransientLookupError as exc:
            self._logger.warning("Targeted phone lookup failed: %s", exc)
            return None
        if raw is None:
            return None
        try:
            record = ContactRecord.from_payload(raw)
        except MalformedRecordError as exc:
            self._logger.warning("Targeted phone lookup returned a malformed record: %s", exc)
            return None
        if any_phone_matches(candidates, record.phones) is None:
            self._logger.warning("Targeted phone lookup returned %r without a matching number", record.name)
            return None
        return record

    async def find_by_phone(self, phone: str) -> ContactRecord | None:
        """Resolve a phone number to its contact.

        The cached snapshot is scanned first and a cold cache never triggers a
        full fetch here. On a miss the source is asked for just the matching
        record, which is then merged into the cache for the next lookup.
        """
        number = validate_phone(phone)
        candidates = normalize_phone(number)
        self._logger.info("Phone search for %s", ", ".join(sorted(candidates)))

        cached = self._scan_cached_phones(candidates)
        if cached is not None:
            self._logger.info("Phone cache hit: %s", cached.name)
            return cached

        self._logger.info("Phone cache miss, querying directory directly")
        found = await self._targeted_phone_lookup(candidates)
        if found is None:
            self._logger.info("No contact found for phone number")
            return None
        if self._cache.upsert_record(found, SNAPSHOT_KEY):
            self._logger.debug("Merged %s into cached directory", found.name)
        return found

    async def check_access(self) -> LivenessResult:
        """Probe the source; failures are reported, never raised."""
        try:
            result = await self._source.check_liveness()
        except Exception as exc:
            self._logger.error("Contacts access check failed: %s", exc)
            return LivenessResult(ok=False, detail=f"Cannot access contacts: {exc}")
        if result.ok and result.contact_count == 0:
            return LivenessResult(
                ok=False,
                detail="No contacts found. The address book might be empty.",
                contact_count=0,
            )
        return result

    async def list_contacts(self, max_results: int | None = None) -> ContactListing:
        limit = validate_max_results(self._config.list_limit if max_results is None else max_results)
        probe = await self.check_access()
        if not probe.ok:
            raise AccessDeniedError(probe.detail)
        snapshot = await self.ensure_snapshot()
        contacts = tuple(snapshot.values())
        return ContactListing(total=len(contacts), contacts=contacts[:limit])

    def cache_info(self) -> tuple[CacheStats, CacheConfig]:
        return self._cache.get_stats(), self._cache.get_config()

    def invalidate_cache(self) -> None:
        self._cache.invalidate()
        self._logger.info("Contact cache manually invalidated")

    def update_cache_config(self, **changes: float) -> CacheConfig:
        return self._cache.update_config(**changes)

    def close(self) -> None:
        self._cache.close()
        close_fn = getattr(self._source, "close", None)
        if callable(close_fn):
            close_fn()
