"""Protocols and lightweight model types."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol, Union

from .errors import MalformedRecordError

MatchType = Literal["name", "email", "phone"]

_LIST_FIELDS = ("phones", "emails", "addresses")


@dataclass(frozen=True)
class ContactRecord:
    """One person in the directory, keyed by name within a snapshot."""

    name: str
    phones: tuple[str, ...] = ()
    emails: tuple[str, ...] = ()
    addresses: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise MalformedRecordError("Contact name must be a non-empty string.")

    @classmethod
    def from_payload(cls, payload: Any) -> ContactRecord:
        """Validate a raw source item and build a record from it.

        Missing or null list fields become empty tuples. Blank strings inside a
        list are dropped. Anything else that does not fit the record shape
        raises MalformedRecordError.
        """
        if isinstance(payload, ContactRecord):
            return payload
        if not isinstance(payload, Mapping):
            raise MalformedRecordError(f"Expected a mapping, got {type(payload).__name__}.")

        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedRecordError("Record has no usable name.")

        fields: dict[str, tuple[str, ...]] = {}
        for field_name in _LIST_FIELDS:
            raw = payload.get(field_name)
            if raw is None:
                fields[field_name] = ()
                continue
            if isinstance(raw, str) or not isinstance(raw, Sequence):
                raise MalformedRecordError(f"Field {field_name!r} of {name.strip()!r} is not a list.")
            values: list[str] = []
            for item in raw:
                if not isinstance(item, str):
                    raise MalformedRecordError(
                        f"Field {field_name!r} of {name.strip()!r} contains a non-string value."
                    )
                if item.strip():
                    values.append(item.strip())
            fields[field_name] = tuple(values)

        return cls(name=name.strip(), **fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phones": list(self.phones),
            "emails": list(self.emails),
            "addresses": list(self.addresses),
        }


RawRecord = Union[ContactRecord, Mapping[str, Any]]


@dataclass(frozen=True)
class FuzzySearchResult:
    """A ranked match of a query against one contact."""

    contact: ContactRecord
    score: float
    match_type: MatchType
    match_value: str


@dataclass(frozen=True)
class LivenessResult:
    """Outcome of a cheap availability probe against the source."""

    ok: bool
    detail: str
    contact_count: int | None = None


@dataclass(frozen=True)
class ContactListing:
    """A bounded page of the directory plus its full size."""

    total: int
    contacts: tuple[ContactRecord, ...]

    @property
    def truncated(self) -> bool:
        return self.total > len(self.contacts)


class DirectorySource(Protocol):
    """Contract for the external contact directory.

    Sources may also offer ``async fetch_one_matching_phone(candidates)``,
    returning the first record owning any candidate phone form or None. It is
    optional and looked up at call time.
    """

    async def fetch_all(self) -> Sequence[RawRecord]:
        """Return every record in the directory."""

    async def check_liveness(self) -> LivenessResult:
        """Probe access and report the directory size when known."""
