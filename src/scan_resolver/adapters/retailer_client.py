"""Retailer-operated product catalogs (Salling Group, REMA 1000, Coop)."""

from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

from scan_resolver.adapters.catalog_client import (
    HttpxCatalogClient,
    api_key_headers,
    bearer_headers,
)
from scan_resolver.adapters.normalization import (
    build_nutrition,
    first_text,
    nested,
    split_size,
    string_list,
)
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.products import NutritionFacts, RawSourceRecord, TrustTier

TRUST = 85


@dataclass(frozen=True)
class RetailerProfile:
    """Static description of one retailer catalog."""

    source: str
    source_name: str
    id_prefix: str
    auth_headers: Callable[[str], dict[str, str]]


SALLING_GROUP = RetailerProfile(
    source="salling-group",
    source_name="Salling Group",
    id_prefix="Salling",
    auth_headers=bearer_headers,
)
REMA_1000 = RetailerProfile(
    source="rema1000",
    source_name="REMA 1000",
    id_prefix="REMA",
    auth_headers=api_key_headers,
)
COOP = RetailerProfile(
    source="coop",
    source_name="Coop",
    id_prefix="Coop",
    auth_headers=bearer_headers,
)


@dataclass
class RetailerCatalogClient:
    """Fetches a retailer's product record by EAN."""

    catalog: HttpxCatalogClient
    profile: RetailerProfile
    credential: str
    base_url: str
    tier: TrustTier = TrustTier.RETAILER
    trust: int = TRUST

    @property
    def name(self) -> str:
        return self.profile.source

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        """Fetch and normalize the retailer record for ``gtin``."""
        url = f"{self.base_url}/products/{quote(gtin)}"
        data = await self.catalog.get_json(
            self.profile.source,
            url,
            headers=self.profile.auth_headers(self.credential),
            token=token,
        )
        if data is None:
            return None
        quantity, unit = split_size(data.get("size"), data.get("unit"))
        category = first_text(data.get("category"), data.get("productCategory"))
        image_url = first_text(
            data.get("imageUrl"),
            data.get("image_url"),
            nested(data, "productImage", "url"),
        )
        return RawSourceRecord(
            gtin=gtin,
            source=self.profile.source,
            source_name=self.profile.source_name,
            tier=self.tier,
            trust=self.trust,
            url_or_id=f"{self.profile.id_prefix}:{gtin}",
            title=first_text(data.get("name"), data.get("title")),
            brand=first_text(data.get("brand"), data.get("brandName")),
            quantity=quantity,
            unit=unit,
            category=category,
            categories=[category] if category else [],
            ingredients_text=first_text(
                data.get("ingredients"), data.get("ingredientStatement")
            ),
            allergens=string_list(data.get("allergens"))
            or string_list(data.get("allergenInformation")),
            traces=string_list(data.get("traces")),
            nutrition=_nutrition(
                data.get("nutrition") or data.get("nutritionalInformation")
            ),
            image_urls=[image_url] if image_url else [],
        )


def _nutrition(info: object) -> NutritionFacts | None:
    """Map the retailer nutrition block, accepting both key spellings."""
    if not isinstance(info, dict):
        return None

    def pick(*keys: str) -> object:
        for key in keys:
            value = info.get(key)
            if value is not None:
                return value
        return None

    return build_nutrition(
        {
            "energy_kcal": pick("energyKcal", "energy", "energy_kcal_per_100g"),
            "fat": pick("fat", "fat_per_100g"),
            "saturated_fat": pick(
                "saturatedFat", "saturated_fat", "saturated_fat_per_100g"
            ),
            "carbohydrates": pick("carbohydrates", "carbohydrates_per_100g"),
            "sugars": pick("sugars", "sugars_per_100g"),
            "fiber": pick("fiber", "fiber_per_100g"),
            "proteins": pick("proteins", "proteins_per_100g"),
            "salt": pick("salt", "salt_per_100g"),
        }
    )
