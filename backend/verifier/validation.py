"""
Synchronous admission checks for verification subjects.
Anything that fails here is rejected before a job record exists.
"""
from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError as SchemaError

from shared.models.domain import JobPosting, Subject, VerificationSubject

from verifier.errors import ValidationError

REQUIRED_POSTING_FIELDS = ("title", "description", "company", "location")
_POSTING_MARKERS = ("title", "description", "requirements", "company")


def validate_company(subject: VerificationSubject) -> VerificationSubject:
    if not subject.name or not subject.name.strip():
        raise ValidationError("Missing required field: name", fields=["name"])
    return subject


def validate_posting(posting: JobPosting) -> JobPosting:
    missing = [field for field in REQUIRED_POSTING_FIELDS if not _present(getattr(posting, field))]
    if posting.company is not None and not posting.company.name.strip():
        missing.append("company.name")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
    return posting


def posting_company(posting: JobPosting) -> VerificationSubject:
    """Validate a posting and return the company it should be verified against."""
    validate_posting(posting)
    if posting.company is None:
        raise ValidationError("Missing required fields: company", fields=["company"])
    return posting.company


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def coerce_subject(payload: Any) -> Subject:
    """
    Turn a model or a JSON-like mapping into a validated subject.
    Mappings carrying posting fields become JobPostings, anything else a company.
    """
    if isinstance(payload, JobPosting):
        return validate_posting(payload)
    if isinstance(payload, VerificationSubject):
        return validate_company(payload)
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Unsupported subject type: {type(payload).__name__}")

    is_posting = any(marker in payload for marker in _POSTING_MARKERS)
    model = JobPosting if is_posting else VerificationSubject
    try:
        subject = model.model_validate(payload)
    except SchemaError as exc:
        fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
        raise ValidationError("Malformed subject fields", fields=fields) from exc
    if isinstance(subject, JobPosting):
        return validate_posting(subject)
    return validate_company(subject)
