"""
Fixture-backed source for offline runs when no registry credentials are configured.
Degrades gracefully: unknown subjects are simply unmatched.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from shared.models.domain import SourceResult, VerificationSubject, normalize_name
from shared.models.enums import SourceName, SourceTier
from shared.utils.logging import get_logger

from verifier.sources.base import SourceAdapter

logger = get_logger(__name__)

DEFAULT_RECORDS: dict[str, dict[str, Any]] = {
    "12345678": {
        "name": "Acme Corp",
        "registration_number": "12345678",
        "status": "active",
        "founding_date": "2020-01-01",
        "address": "1 Mock Street, London",
    },
}


class StaticSource(SourceAdapter):
    """Looks subjects up by registration number, then by normalized name."""

    def __init__(
        self,
        records: Optional[Mapping[str, Mapping[str, Any]]] = None,
        weight: float = 40.0,
        tier: SourceTier = SourceTier.PRIMARY,
        source_name: str = SourceName.STATIC.value,
    ) -> None:
        super().__init__(weight)
        self._tier = tier
        self._name = source_name
        self._records: dict[str, dict[str, Any]] = {}
        for key, record in (DEFAULT_RECORDS if records is None else records).items():
            self._records[key.strip().lower()] = dict(record)
            if record.get("name"):
                self._records.setdefault(normalize_name(record["name"]), dict(record))

    @property
    def name(self) -> str:
        return self._name

    @property
    def tier(self) -> SourceTier:
        return self._tier

    async def query(self, subject: VerificationSubject) -> SourceResult:
        reg = (subject.registration_number or "").strip().lower()
        record = (reg and self._records.get(reg)) or self._records.get(subject.normalized_name)
        if not record:
            return self.result(False)
        return self.result(True, data=dict(record), raw_confidence=float(record.get("confidence", 100.0)))
