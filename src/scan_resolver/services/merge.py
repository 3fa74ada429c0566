"""Merge catalog records by trust priority and data quality."""

from scan_resolver.domain.products import (
    NutritionFacts,
    RawSourceRecord,
    ResolvedProduct,
    score_confidence,
)

_SCALAR_FIELDS = ("title", "brand", "quantity", "unit", "category")
_LIST_FIELDS = ("allergens", "traces", "categories")

IMAGE_SOURCE_PRIORITY: dict[str, int] = {
    "gs1-image": 100,
    "gs1-trade-exact": 90,
    "salling-group": 85,
    "rema1000": 85,
    "coop": 85,
    "openfoodfacts": 70,
}
_DEFAULT_IMAGE_PRIORITY = 50


def sort_by_priority(records: list[RawSourceRecord]) -> list[RawSourceRecord]:
    """Order records by trust tier, then by their own confidence, descending."""
    return sorted(
        records,
        key=lambda record: (record.tier, record.confidence),
        reverse=True,
    )


def merge_records(
    records: list[RawSourceRecord], extra_images: dict[str, str] | None = None
) -> ResolvedProduct:
    """Merge candidate records into one product.

    The highest-priority record is the base. Lower-priority records only fill
    absent scalars, replace ingredients with strictly longer text, extend list
    fields and fill missing nutrition keys. ``extra_images`` maps an image
    source key (e.g. ``gs1-image``) to a URL found outside the record sources.
    """
    if not records:
        raise ValueError("No records to merge")

    ordered = sort_by_priority(records)
    base = ordered[0]
    merged = ResolvedProduct(
        gtin=base.gtin,
        ingredients_text=base.ingredients_text,
        **{name: getattr(base, name) for name in _SCALAR_FIELDS},
        **{name: list(getattr(base, name)) for name in _LIST_FIELDS},
    )
    nutrition = base.nutrition.model_dump() if base.nutrition else {}
    images = [(source, url) for source, url in (extra_images or {}).items() if url]
    images.extend((base.source, url) for url in base.image_urls)

    for other in ordered[1:]:
        for name in _SCALAR_FIELDS:
            if not getattr(merged, name) and getattr(other, name):
                setattr(merged, name, getattr(other, name))
        if other.ingredients_text and len(other.ingredients_text) > len(
            merged.ingredients_text or ""
        ):
            merged.ingredients_text = other.ingredients_text
        for name in _LIST_FIELDS:
            setattr(merged, name, union(getattr(merged, name), getattr(other, name)))
        if other.nutrition is not None:
            for key, value in other.nutrition.model_dump().items():
                if nutrition.get(key) is None and value is not None:
                    nutrition[key] = value
        images.extend((other.source, url) for url in other.image_urls)

    facts = NutritionFacts(**nutrition)
    merged.nutrition = facts if facts.populated_count() else None
    merged.image_urls = _prioritized_images(images)
    merged.source = " + ".join(record.source_name for record in ordered)
    merged.sources_used = [record.source_used() for record in ordered]
    merged.source_confidence = score_confidence(
        base.trust,
        ingredients_text=merged.ingredients_text,
        image_urls=merged.image_urls,
        nutrition=merged.nutrition,
        allergens=merged.allergens,
        traces=merged.traces,
    )
    return merged


def union(current: list[str], extra: list[str]) -> list[str]:
    """Order-preserving union without duplicates."""
    result = list(current)
    for value in extra:
        if value not in result:
            result.append(value)
    return result


def _prioritized_images(images: list[tuple[str, str]]) -> list[str]:
    """Order image URLs by the static source table, keeping arrival order."""
    ranked = sorted(
        enumerate(images),
        key=lambda item: (
            -IMAGE_SOURCE_PRIORITY.get(item[1][0], _DEFAULT_IMAGE_PRIORITY),
            item[0],
        ),
    )
    return union([], [url for _, (_, url) in ranked])
