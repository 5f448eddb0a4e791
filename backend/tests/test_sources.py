"""
Unit tests for source adapters against canned HTTP responses (httpx.MockTransport).
"""
from __future__ import annotations

import httpx
import pytest

from shared.models.domain import VerificationSubject
from shared.models.enums import SourceTier
from shared.utils.http_client import SourceHTTPClient
from verifier.errors import SourceUnavailable
from verifier.sources import CompaniesHouseSource, LinkedInSource, OpenCorporatesSource, StaticSource
from verifier.sources.linkedin import match_score

ACME = VerificationSubject(name="Acme Corp", registration_number="12345678", location="London")


def _transport(routes: dict[str, httpx.Response], seen: list[httpx.Request] | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return routes.get(request.url.path, httpx.Response(404, json={"error": "not found"}))

    return httpx.MockTransport(handler)


# ── StaticSource ────────────────────────────────────────────────────────

class TestStaticSource:

    @pytest.mark.asyncio
    async def test_matches_by_registration_number(self) -> None:
        result = await StaticSource().query(VerificationSubject(name="whatever", registration_number="12345678"))
        assert result.matched is True
        assert result.data["name"] == "Acme Corp"
        assert result.tier == SourceTier.PRIMARY

    @pytest.mark.asyncio
    async def test_matches_by_normalized_name(self) -> None:
        result = await StaticSource().query(VerificationSubject(name="ACME corp."))
        assert result.matched is True

    @pytest.mark.asyncio
    async def test_unknown_subject_unmatched(self) -> None:
        result = await StaticSource().query(VerificationSubject(name="Nobody Inc"))
        assert result.matched is False
        assert StaticSource().contribution(result) == 0.0

    @pytest.mark.asyncio
    async def test_custom_records_and_confidence(self) -> None:
        source = StaticSource(records={"X1": {"name": "Xylo", "confidence": 55}}, weight=25.0)
        result = await source.query(VerificationSubject(name="Other", registration_number="x1"))
        assert result.raw_confidence == 55.0
        assert source.contribution(result) == 25.0


# ── OpenCorporates ──────────────────────────────────────────────────────

OC_PAYLOAD = {
    "results": {
        "companies": [
            {"company": {"name": "Acme Corporation", "company_number": "999"}},
            {
                "company": {
                    "name": "ACME CORP",
                    "company_number": "12345678",
                    "jurisdiction_code": "gb",
                    "current_status": "Active",
                    "incorporation_date": "2020-01-01",
                    "registered_address_in_full": "1 Mock Street, London",
                }
            },
        ]
    }
}


@pytest.mark.asyncio
async def test_opencorporates_matches_registration_number() -> None:
    seen: list[httpx.Request] = []
    transport = _transport({"/v0.4/companies/search": httpx.Response(200, json=OC_PAYLOAD)}, seen)
    source = OpenCorporatesSource("https://oc.test/v0.4", "key", transport=transport)
    try:
        result = await source.query(ACME)
    finally:
        await source.close()

    assert result.matched is True
    assert result.data["status"] == "active"
    assert result.data["founding_date"] == "2020-01-01"
    assert source.contribution(result) == 40.0
    assert seen[0].url.params["api_token"] == "key"
    assert seen[0].url.params["q"] == "Acme Corp"


@pytest.mark.asyncio
async def test_opencorporates_no_candidate_is_unmatched() -> None:
    payload = {"results": {"companies": [{"company": {"name": "Other Ltd", "company_number": "1"}}]}}
    transport = _transport({"/companies/search": httpx.Response(200, json=payload)})
    source = OpenCorporatesSource("https://oc.test", "key", transport=transport)
    result = await source.query(VerificationSubject(name="Acme Corp"))
    await source.close()
    assert result.matched is False


@pytest.mark.asyncio
async def test_opencorporates_malformed_payload_raises() -> None:
    transport = _transport({"/companies/search": httpx.Response(200, json={"unexpected": True})})
    source = OpenCorporatesSource("https://oc.test", "key", transport=transport)
    with pytest.raises(SourceUnavailable) as exc_info:
        await source.query(ACME)
    await source.close()
    assert exc_info.value.source == "opencorporates"


@pytest.mark.asyncio
async def test_opencorporates_client_error_raises() -> None:
    transport = _transport({"/companies/search": httpx.Response(401, json={"error": "bad token"})})
    source = OpenCorporatesSource("https://oc.test", "key", transport=transport)
    with pytest.raises(SourceUnavailable):
        await source.query(ACME)
    await source.close()


# ── Companies House ─────────────────────────────────────────────────────

CH_PAYLOAD = {
    "company_name": "ACME CORP LIMITED",
    "company_number": "12345678",
    "company_status": "active",
    "date_of_creation": "2020-01-01",
    "registered_office_address": {"address_line_1": "1 Mock Street", "locality": "London"},
}


@pytest.mark.asyncio
async def test_companies_house_lookup_uses_basic_auth() -> None:
    seen: list[httpx.Request] = []
    transport = _transport({"/company/12345678": httpx.Response(200, json=CH_PAYLOAD)}, seen)
    source = CompaniesHouseSource("https://ch.test", "secret", transport=transport)
    result = await source.query(ACME)
    await source.close()

    assert result.matched is True
    assert result.data["address"] == "1 Mock Street, London"
    assert source.contribution(result) == 20.0
    assert seen[0].headers["Authorization"].startswith("Basic ")


@pytest.mark.asyncio
async def test_companies_house_without_number_makes_no_request() -> None:
    seen: list[httpx.Request] = []
    source = CompaniesHouseSource("https://ch.test", "secret", transport=_transport({}, seen))
    result = await source.query(VerificationSubject(name="Acme Corp"))
    await source.close()
    assert result.matched is False
    assert seen == []


@pytest.mark.asyncio
async def test_companies_house_unknown_number_is_unmatched() -> None:
    source = CompaniesHouseSource("https://ch.test", "secret", transport=_transport({}))
    result = await source.query(ACME)
    await source.close()
    assert result.matched is False
    assert result.data["reason"] == "not registered"


@pytest.mark.asyncio
async def test_companies_house_forbidden_raises() -> None:
    transport = _transport({"/company/12345678": httpx.Response(403, json={})})
    source = CompaniesHouseSource("https://ch.test", "secret", transport=transport)
    with pytest.raises(SourceUnavailable):
        await source.query(ACME)
    await source.close()


# ── LinkedIn ────────────────────────────────────────────────────────────

FULL_ORG = {
    "id": 42,
    "name": "Acme Corp",
    "founded": 2020,
    "staffCount": 120,
    "locations": [{"city": "London"}],
    "website": "https://acme.test",
    "industry": "Software",
}


class TestMatchScore:

    def test_complete_profile_scores_100(self) -> None:
        assert match_score(ACME, FULL_ORG) == 100.0

    def test_name_only(self) -> None:
        assert match_score(ACME, {"name": "The Acme Corp Group"}) == 40.0

    def test_unrelated_sparse_profile(self) -> None:
        assert match_score(ACME, {"name": "Globex"}) == 0.0


@pytest.mark.asyncio
async def test_linkedin_search_then_fetch_is_capped() -> None:
    routes = {
        "/v2/organizations": httpx.Response(200, json={"elements": [{"id": 42}]}),
        "/v2/organizations/42": httpx.Response(200, json=FULL_ORG),
    }
    seen: list[httpx.Request] = []
    source = LinkedInSource("https://li.test/v2", "token", transport=_transport(routes, seen))
    result = await source.query(ACME)
    await source.close()

    assert source.tier == SourceTier.SECONDARY
    assert result.matched is True
    assert result.raw_confidence == 100.0
    assert source.contribution(result) == 30.0
    assert result.data["employee_count"] == 120
    assert seen[0].headers["Authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_linkedin_contribution_scales_with_score() -> None:
    routes = {"/organizations/7": httpx.Response(200, json={"id": 7, "name": "Acme Corp", "website": "x"})}
    source = LinkedInSource("https://li.test", "token", transport=_transport(routes))
    result = await source.query(VerificationSubject(name="Acme Corp", linkedin_id="7"))
    await source.close()
    assert result.raw_confidence == 50.0
    assert source.contribution(result) == pytest.approx(50.0 / 3)


@pytest.mark.asyncio
async def test_linkedin_no_search_hits_is_unmatched() -> None:
    routes = {"/organizations": httpx.Response(200, json={"elements": []})}
    source = LinkedInSource("https://li.test", "token", transport=_transport(routes))
    result = await source.query(ACME)
    await source.close()
    assert result.matched is False
    assert source.contribution(result) == 0.0


# ── SourceHTTPClient ────────────────────────────────────────────────────

class TestSourceHTTPClient:

    @pytest.mark.asyncio
    async def test_retries_server_error_then_succeeds(self) -> None:
        replies = iter([
            httpx.Response(503, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"ok": True}),
        ])
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return next(replies)

        client = SourceHTTPClient("test", "https://api.example.test", max_retries=3,
                                  transport=httpx.MockTransport(handler))
        try:
            assert await client.get_json("/thing") == {"ok": True}
        finally:
            await client.close()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        client = SourceHTTPClient("test", "https://api.example.test", max_retries=3,
                                  transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_json("/missing")
        finally:
            await client.close()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_status(self) -> None:
        client = SourceHTTPClient(
            "test",
            "https://api.example.test",
            max_retries=2,
            transport=httpx.MockTransport(lambda request: httpx.Response(500, headers={"Retry-After": "0"})),
        )
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_json("/broken")
        finally:
            await client.close()
