"""GS1 Image API client used to enrich merged records with a front image."""

from dataclasses import dataclass
from urllib.parse import quote

from scan_resolver.adapters.catalog_client import HttpxCatalogClient, bearer_headers
from scan_resolver.adapters.normalization import first_text, nested
from scan_resolver.domain.cancellation import CancellationToken

SOURCE = "gs1-image"


@dataclass
class Gs1ImageClient:
    """Looks up the registered product image for a GTIN."""

    catalog: HttpxCatalogClient
    api_key: str
    base_url: str = "https://api.gs1.org/image/v1"

    async def fetch_image_url(
        self, gtin: str, token: CancellationToken | None = None
    ) -> str | None:
        """Return the front image URL, falling back to the first listed image."""
        url = f"{self.base_url}/products/{quote(gtin)}/images"
        data = await self.catalog.get_json(
            SOURCE, url, headers=bearer_headers(self.api_key), token=token
        )
        if data is None:
            return None
        images = data.get("images")
        first_image = images[0] if isinstance(images, list) and images else None
        return first_text(nested(data, "frontImage", "url"), nested(first_image, "url"))
