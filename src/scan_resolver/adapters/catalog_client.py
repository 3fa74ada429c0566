"""Shared plumbing for HTTP product catalog clients."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.errors import (
    LookupAbortedError,
    SourceUnavailableError,
    UnknownTransportError,
)
from scan_resolver.domain.products import RawSourceRecord, TrustTier

_logger = logging.getLogger(__name__)

_SERVER_ERROR = 500


class SourceClient(Protocol):
    """Fetches one catalog's record for a validated GTIN."""

    name: str
    tier: TrustTier
    trust: int

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        """Return the record, None when the catalog does not know the GTIN."""


@dataclass
class HttpxCatalogClient:
    """HTTPX-backed GET with a fixed timeout, short retry and cancellation."""

    http_client: httpx.AsyncClient
    timeout_seconds: float = 10.0
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.5

    async def get_json(
        self,
        source: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        token: CancellationToken | None = None,
    ) -> dict[str, object] | None:
        """GET ``url`` and return the JSON body, None on 404."""
        attempt = 0
        while True:
            try:
                return await self._get_once(source, url, headers, token)
            except LookupAbortedError:
                raise
            except SourceUnavailableError as exc:
                attempt += 1
                _logger.warning(
                    "Catalog %s request failed (attempt %s/%s): %s",
                    source,
                    attempt,
                    self.retry_attempts + 1,
                    exc,
                )
                if attempt > self.retry_attempts or not _is_retryable(exc):
                    raise
                await _sleep(self.retry_delay_seconds * attempt, token)

    async def _get_once(
        self,
        source: str,
        url: str,
        headers: dict[str, str] | None,
        token: CancellationToken | None,
    ) -> dict[str, object] | None:
        request = self.http_client.get(
            url,
            headers={"Accept": "application/json", **(headers or {})},
            timeout=self.timeout_seconds,
        )
        try:
            if token is None:
                response = await request
            else:
                response = await token.run(request)
        except httpx.TimeoutException as exc:
            raise _RetryableSourceError(source, f"timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise _RetryableSourceError(source, f"transport error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UnknownTransportError(f"{source}: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code >= _SERVER_ERROR:
            raise _RetryableSourceError(source, f"HTTP {response.status_code}")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = f"HTTP {response.status_code}"
            raise SourceUnavailableError(source, message) from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailableError(source, "malformed JSON payload") from exc
        if not isinstance(payload, dict):
            raise SourceUnavailableError(source, "unexpected payload shape")
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


class _RetryableSourceError(SourceUnavailableError):
    """Transport failure or 5xx worth one more attempt."""


def _is_retryable(exc: SourceUnavailableError) -> bool:
    return isinstance(exc, _RetryableSourceError)


async def _sleep(seconds: float, token: CancellationToken | None) -> None:
    if token is None:
        await asyncio.sleep(seconds)
    else:
        await token.run(asyncio.sleep(seconds))


def bearer_headers(token: str) -> dict[str, str]:
    """Authorization header for bearer-token catalogs."""
    return {"Authorization": f"Bearer {token}"}


def api_key_headers(api_key: str) -> dict[str, str]:
    """Header for catalogs that expect an X-API-Key."""
    return {"X-API-Key": api_key}
