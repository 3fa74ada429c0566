"""Resolution cache over a fallible key-value store."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pydantic import ValidationError

from scan_resolver.domain.gtin import is_valid_gtin
from scan_resolver.domain.products import ResolvedProduct

_logger = logging.getLogger(__name__)

POSITIVE_PREFIX = "product:"
NEGATIVE_PREFIX = "not_found:"


class CacheStore(Protocol):
    """Persistence interface for cache payloads."""

    def get(self, key: str) -> dict[str, object] | None:
        """Return the stored payload for a key, if present."""

    def put(self, key: str, value: dict[str, object], stored_at: datetime) -> None:
        """Store a payload stamped with its write time."""

    def delete(self, key: str) -> None:
        """Remove a key if present."""

    def evict_before(self, prefix: str, cutoff: datetime) -> int:
        """Delete keys under ``prefix`` stored before ``cutoff``."""


class _NegativeMarker:
    def __repr__(self) -> str:
        return "NEGATIVE"


NEGATIVE = _NegativeMarker()


@dataclass(frozen=True)
class CacheEntry:
    """A cached resolution: a product or the negative marker."""

    product: ResolvedProduct | None
    stored_at: datetime
    stale: bool = False

    @property
    def negative(self) -> bool:
        return self.product is None


@dataclass
class _StoredValue:
    value: dict[str, object]
    stored_at: datetime


@dataclass
class InMemoryCacheStore(CacheStore):
    """Process-local store; last write wins."""

    _entries: dict[str, _StoredValue] = field(default_factory=dict)

    def get(self, key: str) -> dict[str, object] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return {**entry.value, "stored_at": entry.stored_at.isoformat()}

    def put(self, key: str, value: dict[str, object], stored_at: datetime) -> None:
        self._entries[key] = _StoredValue(value=value, stored_at=stored_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def evict_before(self, prefix: str, cutoff: datetime) -> int:
        expired = [
            key
            for key, entry in self._entries.items()
            if key.startswith(prefix) and entry.stored_at < cutoff
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ResolutionCache:
    """TTL-bounded map from GTIN to a resolved product or a negative marker.

    Positive entries are served until ``retention`` even after ``freshness``
    has passed; such hits are flagged stale. Negative entries use their own
    namespace and the shorter ``negative_retention``. Store failures are
    logged and reduce to a miss or a no-op.
    """

    store: CacheStore
    freshness: timedelta = timedelta(hours=24)
    retention: timedelta = timedelta(days=7)
    negative_retention: timedelta = timedelta(hours=6)
    now: Callable[[], datetime] = field(default=lambda: datetime.now(tz=UTC))

    def get(self, gtin: str) -> CacheEntry | None:
        """Return the cached entry for ``gtin`` or None on miss."""
        if not is_valid_gtin(gtin):
            return None
        try:
            positive = self.store.get(POSITIVE_PREFIX + gtin)
            negative = None if positive else self.store.get(NEGATIVE_PREFIX + gtin)
        except Exception:
            _logger.exception("Cache read failed for %s", gtin)
            return None

        current = self.now()
        if positive:
            return self._positive_entry(gtin, positive, current)
        if negative:
            stored_at = _parse_stored_at(negative)
            if stored_at is None or current - stored_at > self.negative_retention:
                return None
            return CacheEntry(product=None, stored_at=stored_at)
        return None

    def put(self, gtin: str, result: ResolvedProduct | _NegativeMarker) -> None:
        """Store a product or the NEGATIVE marker and sweep expired entries."""
        if not is_valid_gtin(gtin):
            _logger.warning("Refusing to cache unvalidated key %r", gtin)
            return
        stored_at = self.now()
        try:
            if isinstance(result, ResolvedProduct):
                self.store.put(
                    POSITIVE_PREFIX + gtin,
                    {"product": result.model_dump(mode="json")},
                    stored_at,
                )
                self.store.delete(NEGATIVE_PREFIX + gtin)
            else:
                self.store.put(NEGATIVE_PREFIX + gtin, {"not_found": True}, stored_at)
                self.store.delete(POSITIVE_PREFIX + gtin)
            self.sweep(stored_at)
        except Exception:
            _logger.exception("Cache write failed for %s", gtin)

    def invalidate(self, gtin: str) -> None:
        """Drop both positive and negative entries for ``gtin``."""
        try:
            self.store.delete(POSITIVE_PREFIX + gtin)
            self.store.delete(NEGATIVE_PREFIX + gtin)
        except Exception:
            _logger.exception("Cache invalidation failed for %s", gtin)

    def sweep(self, current: datetime | None = None) -> int:
        """Evict entries past their namespace's retention ceiling."""
        current = current or self.now()
        removed = self.store.evict_before(POSITIVE_PREFIX, current - self.retention)
        removed += self.store.evict_before(
            NEGATIVE_PREFIX, current - self.negative_retention
        )
        if removed:
            _logger.debug("Cache sweep evicted %s entries", removed)
        return removed

    def _positive_entry(
        self, gtin: str, payload: dict[str, object], current: datetime
    ) -> CacheEntry | None:
        stored_at = _parse_stored_at(payload)
        if stored_at is None or current - stored_at > self.retention:
            return None
        try:
            product = ResolvedProduct.model_validate(payload.get("product"))
        except ValidationError:
            _logger.warning("Discarding malformed cache entry for %s", gtin)
            return None
        return CacheEntry(
            product=product,
            stored_at=stored_at,
            stale=current - stored_at > self.freshness,
        )


def _parse_stored_at(payload: dict[str, object]) -> datetime | None:
    raw = payload.get("stored_at")
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
