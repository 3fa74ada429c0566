"""Resolution engine: cache, concurrent catalog fan-out, merge, write-back."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

from scan_resolver.adapters.catalog_client import SourceClient
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.errors import LookupAbortedError
from scan_resolver.domain.gtin import validate_gtin
from scan_resolver.domain.outcomes import LookupStatus, ResolutionResult
from scan_resolver.domain.products import RawSourceRecord
from scan_resolver.services.cache import NEGATIVE, ResolutionCache
from scan_resolver.services.merge import merge_records

_logger = logging.getLogger(__name__)

NOT_FOUND_ACTIONS = ["scan_again", "manual_entry"]


class ImageClient(Protocol):
    """Optional lookup of a registered product image."""

    async def fetch_image_url(
        self, gtin: str, token: CancellationToken | None = None
    ) -> str | None:
        """Return an image URL for ``gtin`` if one is registered."""


@dataclass
class ResolutionEngine:
    """Resolves validated GTINs against every configured catalog."""

    clients: list[SourceClient]
    cache: ResolutionCache
    image_client: ImageClient | None = None
    image_source: str = "gs1-image"
    _lookups: int = field(default=0, init=False)

    async def resolve(
        self,
        code: str,
        token: CancellationToken | None = None,
        *,
        force_refresh: bool = False,
        ocr_text: str | None = None,
    ) -> ResolutionResult:
        """Resolve ``code`` to a merged product or a not-found result.

        ``ocr_text`` is accepted for callers that captured package text but is
        not used for matching.
        """
        gtin = validate_gtin(code)
        started = time.monotonic()
        _logger.info("LOOKUP_START gtin=%s", gtin)

        if not force_refresh:
            entry = self.cache.get(gtin)
            if entry is not None:
                _logger.info(
                    "LOOKUP_CACHE_HIT gtin=%s negative=%s stale=%s",
                    gtin,
                    entry.negative,
                    entry.stale,
                )
                if entry.product is None:
                    return _not_found(gtin, from_cache=True)
                return ResolutionResult(
                    gtin=gtin,
                    status=LookupStatus.EXACT_EAN,
                    product=entry.product,
                    sources_used=list(entry.product.sources_used),
                    from_cache=True,
                    stale=entry.stale,
                )
            _logger.info("LOOKUP_CACHE_MISS gtin=%s", gtin)

        if token is not None:
            token.raise_if_cancelled()
        self._lookups += 1
        records, image_url = await self._fan_out(gtin, token)
        if token is not None:
            token.raise_if_cancelled()
        if ocr_text and not records:
            _logger.debug("OCR hint ignored for gtin=%s", gtin)

        latency_ms = round((time.monotonic() - started) * 1000)
        if records:
            try:
                extra = {self.image_source: image_url} if image_url else None
                product = merge_records(records, extra_images=extra)
            except Exception:
                _logger.exception("Merging catalog records failed for %s", gtin)
            else:
                self.cache.put(gtin, product)
                _logger.info(
                    "LOOKUP_SUCCESS gtin=%s sources=%s latency_ms=%s",
                    gtin,
                    product.source,
                    latency_ms,
                )
                return ResolutionResult(
                    gtin=gtin,
                    status=LookupStatus.EXACT_EAN,
                    product=product,
                    sources_used=list(product.sources_used),
                )

        self.cache.put(gtin, NEGATIVE)
        _logger.info("LOOKUP_NOT_FOUND gtin=%s latency_ms=%s", gtin, latency_ms)
        return _not_found(gtin)

    async def refresh(
        self, code: str, token: CancellationToken | None = None
    ) -> ResolutionResult:
        """Bypass the cache and re-resolve; the fresh answer overwrites it."""
        return await self.resolve(code, token, force_refresh=True)

    @property
    def network_lookups(self) -> int:
        """Number of resolutions that reached the catalogs."""
        return self._lookups

    async def _fan_out(
        self, gtin: str, token: CancellationToken | None
    ) -> tuple[list[RawSourceRecord], str | None]:
        """Query every client concurrently and wait for all to settle."""
        calls = [client.fetch(gtin, token) for client in self.clients]
        if self.image_client is not None:
            calls.append(self.image_client.fetch_image_url(gtin, token))
        settled = await asyncio.gather(*calls, return_exceptions=True)

        record_results = settled[: len(self.clients)]
        image_url = None
        if self.image_client is not None:
            image_result = settled[-1]
            if isinstance(image_result, str):
                image_url = image_result
            elif isinstance(image_result, BaseException):
                _logger.warning("Image lookup failed for %s: %s", gtin, image_result)

        records: list[RawSourceRecord] = []
        for client, result in zip(self.clients, record_results, strict=True):
            if isinstance(result, LookupAbortedError | asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                _logger.warning(
                    "Source %s unavailable for %s: %s", client.name, gtin, result
                )
                continue
            if result is None:
                _logger.debug("Source %s has no record for %s", client.name, gtin)
                continue
            if result.gtin != gtin:
                _logger.warning(
                    "Source %s answered for %s instead of %s",
                    client.name,
                    result.gtin,
                    gtin,
                )
                continue
            records.append(result)
        return records, image_url


def _not_found(gtin: str, *, from_cache: bool = False) -> ResolutionResult:
    return ResolutionResult(
        gtin=gtin,
        status=LookupStatus.NOT_FOUND,
        from_cache=from_cache,
        next_actions=list(NOT_FOUND_ACTIONS),
    )
