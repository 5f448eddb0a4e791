"""
LinkedIn organization lookup (secondary, corroborating source).
Contribution scales with a 0-100 match score and is capped, so a strong profile
can add weight but never stands in for a registry match.
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

ORGANIZATION_FIELDS = "id,name,description,website,industry,locations,staffCount,specialties,founded"


def match_score(subject: VerificationSubject, org: dict[str, Any]) -> float:
    """Name containment 40, founded 20, staff 20, locations 10, website 10."""
    score = 0.0
    ours = subject.name.lower().strip()
    theirs = str(org.get("name") or "").lower().strip()
    if ours and theirs and (ours in theirs or theirs in ours):
        score += 40
    if org.get("founded"):
        score += 20
    if (org.get("staffCount") or 0) > 0:
        score += 20
    if org.get("locations"):
        score += 10
    if org.get("website"):
        score += 10
    return min(score, 100.0)


class LinkedInSource(SourceAdapter):
    """Searches organizations by keyword (or fetches by id) and scores the first hit."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        max_points: float = 30.0,
        score_divisor: float = 3.0,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(max_points)
        self._divisor = score_divisor
        self._http = SourceHTTPClient(
            SourceName.LINKEDIN.value,
            base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Restli-Protocol-Version": "2.0.0",
            },
            timeout_s=timeout_s,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return SourceName.LINKEDIN.value

    @property
    def tier(self) -> SourceTier:
        return SourceTier.SECONDARY

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    def contribution(self, result: SourceResult) -> float:
        if not result.matched:
            return 0.0
        return min(self._weight, result.raw_confidence / self._divisor)

    async def _find_org_id(self, subject: VerificationSubject) -> str | None:
        if subject.linkedin_id:
            return subject.linkedin_id
        search = await self._http.get_json("/organizations", params={"q": "search", "keywords": subject.name})
        elements = search.get("elements") or []
        if not elements:
            return None
        return str(elements[0]["id"])

    async def query(self, subject: VerificationSubject) -> SourceResult:
        try:
            org_id = await self._find_org_id(subject)
            if org_id is None:
                return self.result(False)
            org = await self._http.get_json(f"/organizations/{org_id}", params={"fields": ORGANIZATION_FIELDS})
            if not isinstance(org, dict):
                raise TypeError("organization payload is not an object")
        except httpx.HTTPError as exc:
            raise SourceUnavailable(self.name, f"request failed: {exc}") from exc
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise SourceUnavailable(self.name, f"malformed payload: {exc}") from exc

        score = match_score(subject, org)
        return self.result(
            score > 0,
            data={
                "linkedin_id": org.get("id"),
                "name": org.get("name"),
                "industry": org.get("industry"),
                "employee_count": org.get("staffCount"),
                "founded_year": org.get("founded"),
                "website": org.get("website"),
            },
            raw_confidence=score,
        )
