"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

import httpx
from supabase import create_client

from scan_resolver.adapters.catalog_client import HttpxCatalogClient, SourceClient
from scan_resolver.adapters.gs1_client import Gs1TradeExactClient
from scan_resolver.adapters.gs1_image_client import Gs1ImageClient
from scan_resolver.adapters.openfoodfacts_client import OpenFoodFactsClient
from scan_resolver.adapters.retailer_client import (
    COOP,
    REMA_1000,
    SALLING_GROUP,
    RetailerCatalogClient,
)
from scan_resolver.adapters.supabase_cache_store import SupabaseCacheStore
from scan_resolver.config import ScannerConfig, Settings, validate_source_config
from scan_resolver.services.cache import CacheStore, InMemoryCacheStore, ResolutionCache
from scan_resolver.services.resolution import ResolutionEngine
from scan_resolver.services.scanner import ScanSessionController

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    clients: list[SourceClient]
    image_client: Gs1ImageClient | None
    cache: ResolutionCache
    engine: ResolutionEngine
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    cache_store: CacheStore | None = None,
) -> AppContainer:
    """Create the default dependency container.

    Enabled sources without credentials are skipped with a warning. Without
    Supabase credentials the cache lives in process memory.
    """
    resolved_settings = settings or Settings()
    for problem in validate_source_config(resolved_settings):
        _logger.warning("Source configuration problem: %s", problem)

    catalog = HttpxCatalogClient(
        http_client=http_client or httpx.AsyncClient(),
        timeout_seconds=resolved_settings.source_timeout_seconds,
        retry_attempts=resolved_settings.source_retry_attempts,
        retry_delay_seconds=resolved_settings.source_retry_delay_seconds,
    )
    clients = _build_clients(resolved_settings, catalog)
    image_client = None
    if resolved_settings.enable_gs1_image and resolved_settings.gs1_image_api_key:
        image_client = Gs1ImageClient(
            catalog=catalog,
            api_key=resolved_settings.gs1_image_api_key,
            base_url=resolved_settings.gs1_image_base_url,
        )
    _logger.info(
        "Configured catalog sources: %s",
        ", ".join(client.name for client in clients) or "none",
    )

    if cache_store is None:
        cache_store = _build_store(resolved_settings)
    cache = ResolutionCache(
        store=cache_store,
        freshness=timedelta(hours=resolved_settings.cache_fresh_hours),
        retention=timedelta(days=resolved_settings.cache_retention_days),
        negative_retention=timedelta(hours=resolved_settings.negative_cache_hours),
    )
    engine = ResolutionEngine(clients=clients, cache=cache, image_client=image_client)

    async def close_resources() -> None:
        await catalog.close()

    return AppContainer(
        settings=resolved_settings,
        clients=clients,
        image_client=image_client,
        cache=cache,
        engine=engine,
        close_resources=close_resources,
    )


def build_scanner(
    container: AppContainer, config: ScannerConfig | None = None
) -> ScanSessionController:
    """Create a scan session controller driving the container's engine."""
    return ScanSessionController(
        container.engine,
        config or ScannerConfig.from_settings(container.settings),
    )


def _build_clients(
    settings: Settings, catalog: HttpxCatalogClient
) -> list[SourceClient]:
    clients: list[SourceClient] = []
    if settings.enable_gs1_trade_exact and settings.gs1_trade_exact_api_key:
        clients.append(
            Gs1TradeExactClient(
                catalog=catalog,
                api_key=settings.gs1_trade_exact_api_key,
                base_url=settings.gs1_trade_exact_base_url,
            )
        )
    retailers = [
        (
            settings.enable_salling_group,
            SALLING_GROUP,
            settings.salling_group_token,
            settings.salling_group_base_url,
        ),
        (
            settings.enable_rema1000,
            REMA_1000,
            settings.rema1000_api_key,
            settings.rema1000_base_url,
        ),
        (settings.enable_coop, COOP, settings.coop_api_key, settings.coop_base_url),
    ]
    for enabled, profile, credential, base_url in retailers:
        if enabled and credential:
            clients.append(
                RetailerCatalogClient(
                    catalog=catalog,
                    profile=profile,
                    credential=credential,
                    base_url=base_url,
                )
            )
    if settings.enable_open_food_facts:
        clients.append(
            OpenFoodFactsClient(
                catalog=catalog,
                base_url=settings.open_food_facts_base_url,
                language=settings.ingredients_language,
            )
        )
    return clients


def _build_store(settings: Settings) -> CacheStore:
    if settings.supabase_url and settings.supabase_service_key:
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseCacheStore(client, table=settings.cache_table)
    return InMemoryCacheStore()
