"""GS1 Trade Exact client (authoritative product registry)."""

from dataclasses import dataclass
from urllib.parse import quote

from scan_resolver.adapters.catalog_client import HttpxCatalogClient, bearer_headers
from scan_resolver.adapters.normalization import (
    build_nutrition,
    first_text,
    nested,
    string_list,
    text_or_none,
)
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.products import NutritionFacts, RawSourceRecord, TrustTier

SOURCE = "gs1-trade-exact"
SOURCE_NAME = "GS1 Trade Exact"
TRUST = 95

_NUTRITION_KEYS = {
    "energy_kcal": "energy",
    "fat": "fat",
    "saturated_fat": "saturatedFat",
    "carbohydrates": "carbohydrates",
    "sugars": "sugars",
    "fiber": "fiber",
    "proteins": "proteins",
    "salt": "salt",
}


@dataclass
class Gs1TradeExactClient:
    """Fetches master data from GS1 Trade Exact."""

    catalog: HttpxCatalogClient
    api_key: str
    base_url: str = "https://api.gs1.org/trade-exact/v1"
    name: str = SOURCE
    tier: TrustTier = TrustTier.REGISTRY
    trust: int = TRUST

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        """Fetch the registry record for ``gtin``."""
        url = f"{self.base_url}/products/{quote(gtin)}"
        data = await self.catalog.get_json(
            SOURCE, url, headers=bearer_headers(self.api_key), token=token
        )
        if data is None:
            return None
        category = text_or_none(nested(data, "productCategory", "name"))
        image_url = text_or_none(nested(data, "productImage", "url"))
        quantity = nested(data, "netContent", "value")
        return RawSourceRecord(
            gtin=gtin,
            source=SOURCE,
            source_name=SOURCE_NAME,
            tier=self.tier,
            trust=self.trust,
            url_or_id=f"GS1-TE:{gtin}",
            title=first_text(data.get("productDescription"), data.get("description")),
            brand=first_text(data.get("brandName"), nested(data, "brand", "name")),
            quantity=str(quantity) if quantity is not None else None,
            unit=text_or_none(nested(data, "netContent", "unitCode")),
            category=category,
            categories=[category] if category else [],
            ingredients_text=text_or_none(data.get("ingredientStatement")),
            allergens=_names(nested(data, "allergenInformation", "allergenType")),
            traces=_names(nested(data, "allergenInformation", "allergenTypeCode")),
            nutrition=_nutrition(data.get("nutritionalInformation")),
            image_urls=[image_url] if image_url else [],
        )


def _names(entries: object) -> list[str]:
    if not isinstance(entries, list):
        return []
    return string_list(
        [entry.get("name") for entry in entries if isinstance(entry, dict)]
    )


def _nutrition(info: object) -> NutritionFacts | None:
    return build_nutrition(
        {field: nested(info, key, "value") for field, key in _NUTRITION_KEYS.items()}
    )
