"""Open Food Facts product client (community catalog, no authentication)."""

from dataclasses import dataclass

from scan_resolver.adapters.catalog_client import HttpxCatalogClient
from scan_resolver.adapters.normalization import (
    build_nutrition,
    first_text,
    normalize_tags,
    split_quantity,
    text_or_none,
    unique,
)
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.errors import SourceUnavailableError
from scan_resolver.domain.products import NutritionFacts, RawSourceRecord, TrustTier

SOURCE = "openfoodfacts"
SOURCE_NAME = "Open Food Facts"
TRUST = 70

_NUTRIMENTS = {
    "energy_kcal": "energy-kcal",
    "fat": "fat",
    "saturated_fat": "saturated-fat",
    "carbohydrates": "carbohydrates",
    "sugars": "sugars",
    "fiber": "fiber",
    "proteins": "proteins",
    "salt": "salt",
}


@dataclass
class OpenFoodFactsClient:
    """Fetches products from the Open Food Facts v2 API."""

    catalog: HttpxCatalogClient
    base_url: str = "https://world.openfoodfacts.org/api/v2"
    language: str = "da"
    name: str = SOURCE
    tier: TrustTier = TrustTier.COMMUNITY
    trust: int = TRUST

    async def fetch(
        self, gtin: str, token: CancellationToken | None = None
    ) -> RawSourceRecord | None:
        """Fetch and normalize the product for ``gtin``."""
        url = f"{self.base_url}/product/{gtin}.json"
        payload = await self.catalog.get_json(SOURCE, url, token=token)
        if payload is None or payload.get("status") == 0:
            return None
        product = payload.get("product")
        if not isinstance(product, dict):
            raise SourceUnavailableError(SOURCE, "response has no product object")
        return self._to_record(gtin, product)

    def _to_record(self, gtin: str, product: dict[str, object]) -> RawSourceRecord:
        quantity, unit = split_quantity(product.get("quantity"))
        categories = normalize_tags(None, product.get("categories"))
        if not categories:
            categories = normalize_tags(product.get("categories_tags"))
        return RawSourceRecord(
            gtin=gtin,
            source=SOURCE,
            source_name=SOURCE_NAME,
            tier=self.tier,
            trust=self.trust,
            url_or_id=f"https://world.openfoodfacts.org/product/{gtin}",
            title=text_or_none(product.get("product_name")),
            brand=text_or_none(product.get("brands")),
            quantity=quantity,
            unit=unit,
            categories=categories,
            ingredients_text=self._ingredients(product),
            allergens=normalize_tags(
                product.get("allergens_tags"), product.get("allergens")
            ),
            traces=normalize_tags(product.get("traces_tags"), product.get("traces")),
            nutrition=_nutrition(product.get("nutriments")),
            image_urls=_image_urls(product),
        )

    def _ingredients(self, product: dict[str, object]) -> str | None:
        """Pick the first non-empty ingredient text variant."""
        listed = product.get("ingredients")
        joined = None
        if isinstance(listed, list):
            joined = ", ".join(
                text
                for text in (
                    text_or_none(item.get("text"))
                    for item in listed
                    if isinstance(item, dict)
                )
                if text
            )
        return first_text(
            product.get(f"ingredients_text_{self.language}"),
            product.get("ingredients_text"),
            product.get("ingredients_text_en"),
            joined,
        )


def _nutrition(nutriments: object) -> NutritionFacts | None:
    if not isinstance(nutriments, dict):
        return None
    values: dict[str, object] = {}
    for field_name, key in _NUTRIMENTS.items():
        per_100g = nutriments.get(f"{key}_100g")
        values[field_name] = per_100g if per_100g is not None else nutriments.get(key)
    return build_nutrition(values)


def _image_urls(product: dict[str, object]) -> list[str]:
    urls = [
        product.get("image_front_url"),
        product.get("image_url"),
        product.get("image_front_small_url"),
    ]
    images = product.get("images")
    if isinstance(images, dict):
        urls.extend(
            image.get("url") for image in images.values() if isinstance(image, dict)
        )
    return unique(url for url in urls if isinstance(url, str) and url)
