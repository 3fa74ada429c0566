"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx
import pytest

from scan_resolver.adapters.catalog_client import SourceClient
from scan_resolver.config import Settings
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.errors import SourceUnavailableError
from scan_resolver.domain.outcomes import LookupStatus, ResolutionResult
from scan_resolver.domain.products import (
    NutritionFacts,
    RawSourceRecord,
    ResolvedProduct,
    TrustTier,
)
from scan_resolver.services.cache import InMemoryCacheStore, ResolutionCache
from scan_resolver.services.resolution import ResolutionEngine

COCA_COLA = "5449000000996"
NUTELLA = "4006381333931"


def make_record(gtin: str = COCA_COLA, **overrides: object) -> RawSourceRecord:
    values: dict[str, object] = {
        "gtin": gtin,
        "source": "openfoodfacts",
        "source_name": "Open Food Facts",
        "tier": TrustTier.COMMUNITY,
        "trust": 70,
        "url_or_id": f"https://world.openfoodfacts.org/product/{gtin}",
    }
    values.update(overrides)
    return RawSourceRecord(**values)


def registry_record(gtin: str = COCA_COLA, **overrides: object) -> RawSourceRecord:
    values: dict[str, object] = {
        "source": "gs1-trade-exact",
        "source_name": "GS1 Trade Exact",
        "tier": TrustTier.REGISTRY,
        "trust": 95,
        "url_or_id": f"GS1-TE:{gtin}",
    }
    values.update(overrides)
    return make_record(gtin, **values)


def retailer_record(gtin: str = COCA_COLA, **overrides: object) -> RawSourceRecord:
    values: dict[str, object] = {
        "source": "salling-group",
        "source_name": "Salling Group",
        "tier": TrustTier.RETAILER,
        "trust": 85,
        "url_or_id": f"Salling:{gtin}",
    }
    values.update(overrides)
    return make_record(gtin, **values)


@dataclass
class FakeSourceClient(SourceClient):
    """Source client returning a canned record or raising a canned error."""

    name: str = "fake"
    tier: TrustTier = TrustTier.COMMUNITY
    trust: int = 70
    record: RawSourceRecord | None = None
    error: Exception | None = None
    calls: list[str] = field(default_factory=list)

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        self.calls.append(gtin)
        if self.error is not None:
            raise self.error
        return self.record


@dataclass
class HangingSourceClient(SourceClient):
    """Source client that never answers unless its token fires."""

    name: str = "hanging"
    tier: TrustTier = TrustTier.RETAILER
    trust: int = 85
    calls: list[str] = field(default_factory=list)

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        self.calls.append(gtin)
        never = asyncio.Event()
        if token is None:
            await never.wait()
        else:
            await token.run(never.wait())
        return None


def failing_client(name: str = "broken") -> FakeSourceClient:
    return FakeSourceClient(
        name=name, error=SourceUnavailableError(name, "HTTP 503")
    )


@dataclass
class FakeImageClient:
    url: str | None = None
    error: Exception | None = None

    async def fetch_image_url(
        self, gtin: str, token: CancellationToken | None = None
    ) -> str | None:
        if self.error is not None:
            raise self.error
        return self.url


@dataclass
class FakeResolver:
    """Engine stand-in for controller tests."""

    product: ResolvedProduct | None = None
    error: Exception | None = None
    hang: bool = False
    delay: float = 0.0
    calls: list[str] = field(default_factory=list)
    tokens: list[CancellationToken | None] = field(default_factory=list)

    async def resolve(
        self, code: str, token: CancellationToken | None = None
    ) -> ResolutionResult:
        self.calls.append(code)
        self.tokens.append(token)
        if self.hang:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.product is None:
            return ResolutionResult(gtin=code, status=LookupStatus.NOT_FOUND)
        return ResolutionResult(
            gtin=code, status=LookupStatus.EXACT_EAN, product=self.product
        )


@dataclass
class FakeClock:
    """Manually advanced monotonic clock."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class MutableNow:
    """Manually advanced wall clock for cache tests."""

    current: datetime = field(
        default_factory=lambda: datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.current


def make_product(gtin: str = COCA_COLA, **overrides: object) -> ResolvedProduct:
    values: dict[str, object] = {
        "gtin": gtin,
        "title": "Coca-Cola Original Taste",
        "brand": "Coca-Cola",
        "nutrition": NutritionFacts(energy_kcal=42, sugars=10.6),
        "source": "Open Food Facts",
        "source_confidence": 75,
    }
    values.update(overrides)
    return ResolvedProduct(**values)


def open_food_facts_transport(
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Open Food Facts stand-in that only knows the Coca-Cola GTIN."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path.endswith(f"/product/{COCA_COLA}.json"):
            return httpx.Response(
                200,
                json={
                    "status": 1,
                    "product": {
                        "product_name": "Coca-Cola Original Taste",
                        "brands": "Coca-Cola",
                        "quantity": "330 ml",
                        "nutriments": {"energy-kcal_100g": 42, "sugars_100g": 10.6},
                    },
                },
            )
        return httpx.Response(200, json={"status": 0})

    return httpx.MockTransport(handler)


@pytest.fixture
def off_settings() -> Settings:
    return Settings(
        _env_file=None,
        enable_open_food_facts=True,
        open_food_facts_base_url="https://off.test/api/v2",
        supabase_url=None,
        supabase_service_key=None,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        enable_gs1_trade_exact=True,
        gs1_trade_exact_api_key="gs1-key",
        enable_salling_group=True,
        salling_group_token="salling-token",
        enable_rema1000=True,
        rema1000_api_key=None,
        enable_open_food_facts=True,
        supabase_url=None,
        supabase_service_key=None,
    )


@pytest.fixture
def store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def now() -> MutableNow:
    return MutableNow()


@pytest.fixture
def cache(store: InMemoryCacheStore, now: MutableNow) -> ResolutionCache:
    return ResolutionCache(store=store, now=now)


@pytest.fixture
def engine_factory(cache: ResolutionCache):  # type: ignore[no-untyped-def]
    def factory(
        *clients: SourceClient, image_client: FakeImageClient | None = None
    ) -> ResolutionEngine:
        return ResolutionEngine(
            clients=list(clients), cache=cache, image_client=image_client
        )

    return factory
