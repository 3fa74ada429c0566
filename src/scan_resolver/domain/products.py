"""Product records produced by catalog sources and the merge step."""

from enum import IntEnum

from pydantic import BaseModel, Field


class TrustTier(IntEnum):
    """Static ranking of catalog authority, highest first when sorted desc."""

    COMMUNITY = 70
    RETAILER = 90
    REGISTRY = 100


class NutritionFacts(BaseModel):
    """Per-100g nutrition values; every field is optional."""

    energy_kcal: float | None = None
    fat: float | None = None
    saturated_fat: float | None = None
    carbohydrates: float | None = None
    sugars: float | None = None
    fiber: float | None = None
    proteins: float | None = None
    salt: float | None = None

    def populated_count(self) -> int:
        """Return how many nutrition fields carry a value."""
        return sum(1 for value in self.model_dump().values() if value is not None)


class SourceUsed(BaseModel):
    """Provenance of one contributing catalog answer."""

    name: str
    url_or_id: str
    matched_by: str = "ean"
    confidence: int = Field(ge=0, le=100)


class RawSourceRecord(BaseModel):
    """Uniformly shaped record emitted by a single source client."""

    gtin: str
    source: str
    source_name: str
    tier: TrustTier
    trust: int = Field(ge=0, le=100)
    url_or_id: str
    title: str | None = None
    brand: str | None = None
    quantity: str | None = None
    unit: str | None = None
    category: str | None = None
    categories: list[str] = Field(default_factory=list)
    ingredients_text: str | None = None
    allergens: list[str] = Field(default_factory=list)
    traces: list[str] = Field(default_factory=list)
    nutrition: NutritionFacts | None = None
    image_urls: list[str] = Field(default_factory=list)

    @property
    def confidence(self) -> int:
        """Trust score adjusted by the record's own data quality."""
        return score_confidence(
            self.trust,
            ingredients_text=self.ingredients_text,
            image_urls=self.image_urls,
            nutrition=self.nutrition,
            allergens=self.allergens,
            traces=self.traces,
        )

    def source_used(self) -> SourceUsed:
        """Describe this record for the merged provenance list."""
        return SourceUsed(
            name=self.source_name,
            url_or_id=self.url_or_id,
            confidence=self.confidence,
        )


class ResolvedProduct(BaseModel):
    """Merged product record; only the GTIN is mandatory."""

    gtin: str
    title: str | None = None
    brand: str | None = None
    quantity: str | None = None
    unit: str | None = None
    category: str | None = None
    categories: list[str] = Field(default_factory=list)
    ingredients_text: str | None = None
    allergens: list[str] = Field(default_factory=list)
    traces: list[str] = Field(default_factory=list)
    nutrition: NutritionFacts | None = None
    image_urls: list[str] = Field(default_factory=list)
    source: str = ""
    source_confidence: int = Field(default=0, ge=0, le=100)
    sources_used: list[SourceUsed] = Field(default_factory=list)


def score_confidence(  # noqa: PLR0913
    trust: int,
    *,
    ingredients_text: str | None,
    image_urls: list[str],
    nutrition: NutritionFacts | None,
    allergens: list[str],
    traces: list[str],
) -> int:
    """Return trust plus quality bonus, capped at 100."""
    bonus = 0
    if ingredients_text:
        if len(ingredients_text) > 100:
            bonus += 10
        elif len(ingredients_text) > 50:
            bonus += 5
    if image_urls:
        bonus += 5
    if nutrition is not None and nutrition.populated_count() >= 5:
        bonus += 5
    if allergens or traces:
        bonus += 3
    return min(100, trust + bonus)
