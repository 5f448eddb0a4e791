"""
Async HTTP client wrapper for verification source requests.
Retries throttling, server errors and timeouts; everything else surfaces to the adapter.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class SourceHTTPClient:
    """
    Async HTTP client tailored for company-registry and network APIs.
    Retries 429 and 5xx responses and timeouts; 4xx responses raise immediately.
    """

    def __init__(
        self,
        source_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._source = source_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._max_retries = max(1, max_retries or settings.provider_max_retries)
        self._default_headers = {"Accept": "application/json", **(headers or {})}
        self._auth = auth
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            auth=self._auth,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET `path` and return the decoded JSON body.

        429/5xx responses and timeouts are retried up to max_retries attempts,
        honouring Retry-After (capped at 5s). Other 4xx raise immediately.

        Raises:
            httpx.HTTPStatusError: On non-retryable statuses or once retries run out.
            httpx.TimeoutException: If the final attempt times out.
            ValueError: If the body is not valid JSON.
        """
        if not self._client:
            await self.start()
        assert self._client is not None

        attempt = 0
        while True:
            attempt += 1
            final = attempt >= self._max_retries
            try:
                resp = await self._client.get(path, params=params)
            except httpx.TimeoutException:
                logger.warning("source_timeout", source=self._source, path=path, attempt=attempt)
                if final:
                    raise
                await asyncio.sleep(0.5 * attempt)
                continue

            if _retryable(resp) and not final:
                delay = _retry_delay(resp, attempt)
                logger.warning(
                    "source_retryable_status",
                    source=self._source,
                    path=path,
                    status=resp.status_code,
                    attempt=attempt,
                    retry_in_s=delay,
                )
                await asyncio.sleep(delay)
                continue

            resp.raise_for_status()
            logger.debug("source_response", source=self._source, path=path, status=resp.status_code)
            return resp.json()


def _retryable(resp: httpx.Response) -> bool:
    return resp.status_code == 429 or resp.status_code >= 500


def _retry_delay(resp: httpx.Response, attempt: int) -> float:
    try:
        retry_after = float(resp.headers.get("Retry-After", "1"))
    except ValueError:
        # HTTP-date form is not worth parsing here
        retry_after = 1.0
    return min(retry_after, 5.0) * attempt
