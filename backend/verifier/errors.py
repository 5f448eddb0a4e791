"""
Error taxonomy for the verification core.
Every error carries a stable code so collaborators can map it to a response.
"""
from __future__ import annotations

from typing import Any, Optional


class VerificationError(Exception):
    """Base error. `message` is safe to show to callers."""

    code = "VERIFICATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(VerificationError):
    """Missing or malformed subject fields. Rejected synchronously, never queued."""

    code = "INVALID_REQUEST"

    def __init__(self, message: str, fields: Optional[list[str]] = None, code: Optional[str] = None) -> None:
        super().__init__(message, code)
        self.fields = fields or []

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "fields": self.fields}


class SourceUnavailable(VerificationError):
    """A single adapter failed; recovered by omitting that source."""

    code = "SOURCE_UNAVAILABLE"

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class AllSourcesFailed(VerificationError):
    """Every queried source failed; terminal Failed outcome with trust score 0."""

    code = "ALL_SOURCES_FAILED"

    def __init__(self, sources: list[str]) -> None:
        names = ", ".join(sources) if sources else "none configured"
        super().__init__(f"All verification sources failed ({names})")
        self.sources = sources


class RateLimited(VerificationError):
    """Caller must back off."""

    code = "RATE_LIMITED"

    def __init__(self, key: str, max_requests: int, window_ms: int) -> None:
        super().__init__(f"Rate limit exceeded: {max_requests} requests per {window_ms}ms")
        self.key = key
        self.max_requests = max_requests
        self.window_ms = window_ms


class CacheUnavailable(VerificationError):
    """Cache backend unreachable; callers fall through to fresh computation."""

    code = "CACHE_UNAVAILABLE"


class NotFound(VerificationError):
    """Job or key absent. Distinct from an empty result."""

    code = "JOB_NOT_FOUND"


class InvalidTransition(VerificationError):
    """Job state change not allowed (e.g. retrying a job that has not failed)."""

    code = "INVALID_RETRY"


class DuplicatePosting(VerificationError):
    """Job posting rejected before admission to the orchestrator."""

    code = "DUPLICATE_POSTING"

    def __init__(self, check: Any) -> None:
        super().__init__(f"Duplicate job posting detected (similarity {check.similarity:.2f})")
        self.check = check

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "details": self.check.model_dump(mode="json")}
