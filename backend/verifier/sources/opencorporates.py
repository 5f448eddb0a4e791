"""
OpenCorporates primary source using the public company search API.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from shared.models.domain import SourceResult, VerificationSubject, normalize_name
from shared.models.enums import SourceName, SourceTier
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from verifier.errors import SourceUnavailable
from verifier.sources.base import SourceAdapter

logger = get_logger(__name__)


def _best_match(subject: VerificationSubject, companies: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Registration number wins; otherwise an exact normalized-name match."""
    reg = (subject.registration_number or "").strip().lower()
    wanted = subject.normalized_name
    by_name = None
    for entry in companies:
        company = entry.get("company", entry)
        if reg and str(company.get("company_number", "")).strip().lower() == reg:
            return company
        if by_name is None and normalize_name(company.get("name")) == wanted:
            by_name = company
    return by_name


class OpenCorporatesSource(SourceAdapter):
    """Searches OpenCorporates by name; matches on registration number or exact name."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        weight: float = 40.0,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(weight)
        self._api_key = api_key
        self._http = SourceHTTPClient(
            SourceName.OPENCORPORATES.value,
            base_url,
            timeout_s=timeout_s,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return SourceName.OPENCORPORATES.value

    @property
    def tier(self) -> SourceTier:
        return SourceTier.PRIMARY

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def query(self, subject: VerificationSubject) -> SourceResult:
        params = {"q": subject.name, "api_token": self._api_key}
        if subject.registration_number:
            params["company_number"] = subject.registration_number
        try:
            payload = await self._http.get_json("/companies/search", params=params)
            companies = payload["results"]["companies"]
        except httpx.HTTPError as exc:
            raise SourceUnavailable(self.name, f"request failed: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise SourceUnavailable(self.name, f"malformed payload: {exc}") from exc

        company = _best_match(subject, companies or [])
        if company is None:
            logger.debug("opencorporates_no_match", company=subject.name, candidates=len(companies or []))
            return self.result(False)

        return self.result(
            True,
            data={
                "name": company.get("name"),
                "registration_number": company.get("company_number"),
                "jurisdiction": company.get("jurisdiction_code"),
                "status": (company.get("current_status") or "unknown").lower(),
                "founding_date": company.get("incorporation_date"),
                "address": company.get("registered_address_in_full"),
            },
            raw_confidence=100.0,
        )
