from verifier.sources.base import SourceAdapter
from verifier.sources.companies_house import CompaniesHouseSource
from verifier.sources.linkedin import LinkedInSource
from verifier.sources.opencorporates import OpenCorporatesSource
from verifier.sources.static import StaticSource

__all__ = [
    "SourceAdapter",
    "CompaniesHouseSource",
    "LinkedInSource",
    "OpenCorporatesSource",
    "StaticSource",
]
