import asyncio
import logging
from typing import Any

import pytest

from contact_resolver.cache import DirectoryCache
from contact_resolver.config import ResolverConfig
from contact_resolver.errors import AccessDeniedError, InvalidInputError, TransientLookupError
from contact_resolver.models import ContactRecord, LivenessResult
from contact_resolver.service import ResolutionService, build_snapshot

JOHN = {"name": "John Doe", "phones": ["+15551234567"], "emails": ["john@x.com"], "addresses": []}


class FakeSource:
    def __init__(
        self,
        records: list[Any] | None = None,
        *,
        targeted: Any = None,
        liveness: LivenessResult | None = None,
    ) -> None:
        self.records = records if records is not None else [JOHN]
        self.targeted = targeted
        self.liveness = liveness or LivenessResult(ok=True, detail="ok", contact_count=1)
        self.fetch_calls = 0
        self.lookup_calls: list[list[str]] = []
        self.closed = False

    async def fetch_all(self) -> list[Any]:
        self.fetch_calls += 1
        await asyncio.sleep(0)
        return list(self.records)

    async def fetch_one_matching_phone(self, candidates: list[str]) -> Any:
        self.lookup_calls.append(candidates)
        if isinstance(self.targeted, Exception):
            raise self.targeted
        return self.targeted

    async def check_liveness(self) -> LivenessResult:
        return self.liveness

    def close(self) -> None:
        self.closed = True


class BulkOnlySource:
    async def fetch_all(self) -> list[Any]:
        return [JOHN]

    async def check_liveness(self) -> LivenessResult:
        return LivenessResult(ok=True, detail="ok", contact_count=1)


def _service(source: Any, cache: DirectoryCache | None = None, **config: Any) -> ResolutionService:
    return ResolutionService(
        source=source,
        cache=cache or DirectoryCache(),
        config=ResolverConfig(directory_file="contacts.json", **config),
        logger=logging.getLogger("test"),
    )


def test_scenario_over_single_contact_directory() -> None:
    source = FakeSource()
    service = _service(source)

    async def scenario() -> None:
        results = await service.search_by_name_or_text("john", 10)
        assert len(results) == 1
        assert results[0].match_type == "name"
        assert results[0].score >= 0.8
        assert results[0].contact.name == "John Doe"

        by_phone = await service.find_by_phone("555-123-4567")
        assert by_phone is not None and by_phone.name == "John Doe"

        by_email = await service.find_by_email("x.com")
        assert [contact.name for contact in by_email] == ["John Doe"]

        assert await service.find_by_phone("999-999-9999") is None

    asyncio.run(scenario())
    assert source.fetch_calls == 1
    assert source.lookup_calls and all(call for call in source.lookup_calls)


def test_concurrent_searches_issue_one_fetch() -> None:
    source = FakeSource()
    service = _service(source)

    async def scenario() -> None:
        await asyncio.gather(
            service.search_by_name_or_text("john"),
            service.find_by_email("john"),
            service.search_contacts("doe"),
        )

    asyncio.run(scenario())
    assert source.fetch_calls == 1


def test_malformed_records_are_skipped() -> None:
    source = FakeSource([JOHN, {"name": ""}, "garbage", {"name": "Ann", "emails": "ann@x.com"}, {"name": "Bo"}])
    service = _service(source)
    listing = asyncio.run(service.list_contacts())
    assert [contact.name for contact in listing.contacts] == ["John Doe", "Bo"]
    assert listing.contacts[1].phones == ()


def test_build_snapshot_last_record_wins() -> None:
    snapshot = build_snapshot(
        [{"name": "Ann", "phones": ["1"]}, {"name": " Ann ", "emails": ["a@x.com"]}],
        logger=logging.getLogger("test"),
    )
    assert snapshot == {"Ann": ContactRecord(name="Ann", emails=("a@x.com",))}


def test_find_by_phone_cold_cache_uses_targeted_lookup_without_full_fetch() -> None:
    source = FakeSource(targeted=JOHN)
    cache = DirectoryCache()
    service = _service(source, cache)

    found = asyncio.run(service.find_by_phone("(555) 123-4567"))
    assert found is not None and found.name == "John Doe"
    assert source.fetch_calls == 0
    assert "5551234567" in source.lookup_calls[0]
    assert cache.get() is None


def test_find_by_phone_upserts_targeted_result_into_warm_cache() -> None:
    jane = {"name": "Jane Roe", "phones": ["+1 555 000 1111"]}
    source = FakeSource(targeted=jane)
    cache = DirectoryCache()
    service = _service(source, cache)

    async def scenario() -> None:
        await service.search_by_name_or_text("john")
        first = await service.find_by_phone("5550001111")
        assert first is not None and first.name == "Jane Roe"
        source.targeted = None
        second = await service.find_by_phone("+15550001111")
        assert second is not None and second.name == "Jane Roe"

    asyncio.run(scenario())
    assert len(source.lookup_calls) == 1
    snapshot = cache.get()
    assert snapshot is not None and set(snapshot) == {"John Doe", "Jane Roe"}


def test_find_by_phone_transient_failure_returns_none() -> None:
    source = FakeSource(targeted=TransientLookupError("timeout"))
    service = _service(source)
    assert asyncio.run(service.find_by_phone("555-000-2222")) is None


def test_find_by_phone_rejects_mismatched_or_malformed_targeted_record() -> None:
    source = FakeSource(targeted={"name": "Wrong", "phones": ["+1 555 999 0000"]})
    service = _service(source)
    assert asyncio.run(service.find_by_phone("555-000-2222")) is None
    source.targeted = {"phones": ["5550002222"]}
    assert asyncio.run(service.find_by_phone("555-000-2222")) is None


def test_find_by_phone_without_targeted_capability() -> None:
    service = _service(BulkOnlySource())
    assert asyncio.run(service.find_by_phone("555-123-4567")) is None


def test_find_by_phone_access_denied_propagates() -> None:
    source = FakeSource(targeted=AccessDeniedError("denied"))
    service = _service(source)
    with pytest.raises(AccessDeniedError):
        asyncio.run(service.find_by_phone("555-123-4567"))


@pytest.mark.parametrize("phone", ["", "   ", "555-CALL-NOW", "+-()", "1" * 31])
def test_invalid_phone_is_rejected_before_any_lookup(phone: str) -> None:
    source = FakeSource(targeted=JOHN)
    service = _service(source)
    with pytest.raises(InvalidInputError):
        asyncio.run(service.find_by_phone(phone))
    assert source.lookup_calls == []


def test_invalid_queries_do_not_touch_the_source() -> None:
    source = FakeSource()
    service = _service(source)
    with pytest.raises(InvalidInputError):
        asyncio.run(service.search_by_name_or_text("  "))
    with pytest.raises(InvalidInputError):
        asyncio.run(service.search_by_name_or_text("john", 0))
    with pytest.raises(InvalidInputError):
        asyncio.run(service.find_by_email("john doe"))
    assert source.fetch_calls == 0


def test_access_denied_fetch_propagates_and_is_retried() -> None:
    class DeniedOnce(FakeSource):
        async def fetch_all(self) -> list[Any]:
            self.fetch_calls += 1
            if self.fetch_calls == 1:
                raise AccessDeniedError("no permission")
            return [JOHN]

    source = DeniedOnce()
    service = _service(source)
    with pytest.raises(AccessDeniedError) as excinfo:
        asyncio.run(service.search_by_name_or_text("john"))
    assert excinfo.value.guidance
    assert asyncio.run(service.search_contacts("john"))[0].name == "John Doe"
    assert source.fetch_calls == 2


def test_find_numbers_returns_best_match_phones() -> None:
    source = FakeSource([JOHN, {"name": "Johnny Cash", "phones": ["111"]}])
    service = _service(source)
    assert asyncio.run(service.find_numbers("John Doe")) == ["+15551234567"]
    assert asyncio.run(service.find_numbers("nobody")) == []


def test_find_by_email_limits_results() -> None:
    source = FakeSource([JOHN, {"name": "Jo", "emails": ["jo@x.com"]}])
    service = _service(source)
    assert [c.name for c in asyncio.run(service.find_by_email("X.COM"))] == ["John Doe", "Jo"]
    assert [c.name for c in asyncio.run(service.find_by_email("x.com", 1))] == ["John Doe"]


def test_list_contacts_truncates_and_checks_access() -> None:
    source = FakeSource([JOHN, {"name": "Ann"}, {"name": "Bob"}])
    service = _service(source, list_limit=2)
    listing = asyncio.run(service.list_contacts())
    assert listing.total == 3
    assert listing.truncated is True

    source.liveness = LivenessResult(ok=False, detail="Contacts access denied")
    with pytest.raises(AccessDeniedError, match="Contacts access denied"):
        asyncio.run(service.list_contacts())


def test_list_contacts_refuses_empty_address_book() -> None:
    source = FakeSource(liveness=LivenessResult(ok=True, detail="ok", contact_count=0))
    service = _service(source)
    with pytest.raises(AccessDeniedError, match="might be empty"):
        asyncio.run(service.list_contacts())
    assert source.fetch_calls == 0


def test_check_access_reports_empty_directory_and_errors() -> None:
    source = FakeSource(liveness=LivenessResult(ok=True, detail="ok", contact_count=0))
    service = _service(source)
    probe = asyncio.run(service.check_access())
    assert probe.ok is False
    assert "empty" in probe.detail

    class Exploding(FakeSource):
        async def check_liveness(self) -> LivenessResult:
            raise AccessDeniedError("nope")

    probe = asyncio.run(_service(Exploding()).check_access())
    assert probe.ok is False
    assert "nope" in probe.detail


def test_cache_controls_and_close() -> None:
    source = FakeSource()
    cache = DirectoryCache()
    service = _service(source, cache)
    asyncio.run(service.search_contacts("john"))
    stats, config = service.cache_info()
    assert stats.entries == 1
    assert config.ttl_seconds == 300.0

    service.invalidate_cache()
    assert service.cache_info()[0].entries == 0
    assert service.update_cache_config(ttl_seconds=30).ttl_seconds == 30

    service.close()
    assert source.closed is True
