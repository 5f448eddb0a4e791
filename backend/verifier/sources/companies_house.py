"""
UK Companies House primary source. Lookup is by company number only.
"""
from __future__ import annotations

from typing import Any

import httpx

from shared.models.domain import SourceResult, VerificationSubject
from shared.models.enums import SourceName, SourceTier
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from verifier.errors import SourceUnavailable
from verifier.sources.base import SourceAdapter

logger = get_logger(__name__)


def _format_address(address: dict[str, Any] | None) -> str:
    if not address:
        return ""
    parts = [
        address.get("address_line_1"),
        address.get("address_line_2"),
        address.get("locality"),
        address.get("postal_code"),
    ]
    return ", ".join(p for p in parts if p)


class CompaniesHouseSource(SourceAdapter):
    """GET /company/{number} with the API key as basic-auth username."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        weight: float = 20.0,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(weight)
        self._http = SourceHTTPClient(
            SourceName.COMPANIES_HOUSE.value,
            base_url,
            auth=(api_key, ""),
            timeout_s=timeout_s,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return SourceName.COMPANIES_HOUSE.value

    @property
    def tier(self) -> SourceTier:
        return SourceTier.PRIMARY

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def query(self, subject: VerificationSubject) -> SourceResult:
        number = (subject.registration_number or "").strip()
        if not number:
            return self.result(False, data={"reason": "no registration number"})

        try:
            payload = await self._http.get_json(f"/company/{number}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return self.result(False, data={"reason": "not registered"})
            raise SourceUnavailable(self.name, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(self.name, f"request failed: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(self.name, f"malformed payload: {exc}") from exc

        if not isinstance(payload, dict) or "company_number" not in payload:
            raise SourceUnavailable(self.name, "malformed payload: missing company_number")

        return self.result(
            True,
            data={
                "name": payload.get("company_name"),
                "registration_number": payload.get("company_number"),
                "status": payload.get("company_status", "unknown"),
                "founding_date": payload.get("date_of_creation"),
                "address": _format_address(payload.get("registered_office_address")),
            },
            raw_confidence=100.0,
        )
