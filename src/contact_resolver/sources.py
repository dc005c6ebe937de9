"""Directory source adapters: an HTTP directory service and a JSON dump file."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .errors import AccessDeniedError, DirectoryFetchError, MalformedRecordError, TransientLookupError
from .models import ContactRecord, LivenessResult, RawRecord
from .phone import any_phone_matches

_DENIED_STATUSES = frozenset({401, 403})


def make_retry_session(user_agent: str, api_token: str | None = None) -> Session:
    """Create requests session with retry/backoff defaults."""
    session = Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    if api_token:
        session.headers["Authorization"] = f"Bearer {api_token}"
    retry = Retry(
        total=3,
        backoff_factor=0.6,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET"}),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _records_from_payload(payload: Any) -> list[Any]:
    if isinstance(payload, dict):
        payload = payload.get("contacts")
    if not isinstance(payload, list):
        raise DirectoryFetchError("Directory payload is not a list of contacts.")
    return payload


class HttpDirectorySource:
    """Directory backed by a JSON HTTP service.

    Endpoints, relative to ``base_url``:

    * ``GET /contacts`` returns a list of contacts (or ``{"contacts": [...]}``)
    * ``GET /contacts/lookup?phone=...`` returns one contact, 404 when none
    * ``GET /contacts/count`` returns ``{"count": N}``

    Requests are blocking and run in a worker thread so the event loop stays
    free for other lookups.
    """

    def __init__(
        self,
        *,
        session: Session,
        base_url: str,
        timeout: float,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._logger = logger

    def _get(self, path: str, **kwargs: Any) -> Any:
        response = self._session.get(f"{self._base_url}{path}", timeout=self._timeout, **kwargs)
        if response.status_code in _DENIED_STATUSES:
            raise AccessDeniedError(
                f"Directory service refused access ({response.status_code}).",
                guidance="Check the directory API token (--token or CONTACT_DIRECTORY_TOKEN).",
            )
        return response

    def _fetch_all_sync(self) -> list[Any]:
        try:
            response = self._get("/contacts")
            response.raise_for_status()
            payload = response.json()
        except (RequestException, ValueError) as exc:
            raise DirectoryFetchError(f"Directory fetch failed: {exc}") from exc
        records = _records_from_payload(payload)
        self._logger.debug("Directory service returned %d raw records", len(records))
        return records

    def _fetch_one_sync(self, candidates: list[str]) -> Any:
        try:
            response = self._get("/contacts/lookup", params=[("phone", c) for c in candidates])
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (RequestException, ValueError) as exc:
            raise TransientLookupError(f"Phone lookup failed: {exc}") from exc
        if isinstance(payload, dict) and "contact" in payload:
            return payload["contact"]
        return payload

    def _count_sync(self) -> LivenessResult:
        try:
            response = self._get("/contacts/count")
            response.raise_for_status()
            count = int(response.json().get("count"))
        except AccessDeniedError as exc:
            return LivenessResult(ok=False, detail=str(exc))
        except (RequestException, ValueError, TypeError, AttributeError) as exc:
            return LivenessResult(ok=False, detail=f"Cannot reach directory service: {exc}")
        return LivenessResult(ok=True, detail=f"Directory service has {count} contacts.", contact_count=count)

    async def fetch_all(self) -> list[Any]:
        return await asyncio.to_thread(self._fetch_all_sync)

    async def fetch_one_matching_phone(self, candidates: list[str]) -> Any:
        return await asyncio.to_thread(self._fetch_one_sync, candidates)

    async def check_liveness(self) -> LivenessResult:
        return await asyncio.to_thread(self._count_sync)

    def close(self) -> None:
        self._session.close()


class JsonFileDirectorySource:
    """Directory read from a JSON dump on every call."""

    def __init__(self, *, path: str, logger: logging.Logger) -> None:
        self._path = Path(path).expanduser()
        self._logger = logger

    def _load_sync(self) -> list[Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except PermissionError as exc:
            raise AccessDeniedError(
                f"Cannot read contacts dump {self._path}.",
                guidance="Check the file permissions of the contacts dump.",
            ) from exc
        except OSError as exc:
            raise DirectoryFetchError(f"Cannot open contacts dump {self._path}: {exc}") from exc
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise DirectoryFetchError(f"Contacts dump {self._path} is not valid JSON: {exc}") from exc
        return _records_from_payload(payload)

    def _find_sync(self, candidates: list[str]) -> ContactRecord | None:
        wanted = frozenset(candidates)
        for item in self._load_sync():
            try:
                record = ContactRecord.from_payload(item)
            except MalformedRecordError:
                continue
            if any_phone_matches(wanted, record.phones) is not None:
                return record
        return None

    def _count_sync(self) -> LivenessResult:
        try:
            count = len(self._load_sync())
        except (AccessDeniedError, DirectoryFetchError) as exc:
            return LivenessResult(ok=False, detail=str(exc))
        return LivenessResult(ok=True, detail=f"{self._path} holds {count} contacts.", contact_count=count)

    async def fetch_all(self) -> list[Any]:
        return await asyncio.to_thread(self._load_sync)

    async def fetch_one_matching_phone(self, candidates: list[str]) -> RawRecord | None:
        try:
            return await asyncio.to_thread(self._find_sync, candidates)
        except DirectoryFetchError as exc:
            raise TransientLookupError(str(exc)) from exc

    async def check_liveness(self) -> LivenessResult:
        return await asyncio.to_thread(self._count_sync)
