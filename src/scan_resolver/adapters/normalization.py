"""Helpers that turn loosely-typed catalog payloads into record fields."""

import re
from collections.abc import Iterable

from scan_resolver.domain.products import NutritionFacts

_QUANTITY = re.compile(r"^\s*(\d+(?:[.,]\d+)?)\s*(ml|cl|dl|l|g|kg)\s*$", re.IGNORECASE)
_LOCALE_PREFIX = re.compile(r"^[a-z]{2,3}:")


def split_quantity(raw: object) -> tuple[str | None, str | None]:
    """Split "500 ml" into ("500", "ml"); unparseable input gives (None, None)."""
    if not isinstance(raw, str):
        return None, None
    match = _QUANTITY.match(raw)
    if match is None:
        return None, None
    return match.group(1).replace(",", "."), match.group(2).lower()


def split_size(size: object, unit: object = None) -> tuple[str | None, str | None]:
    """Split a retailer size string, falling back to digits and letters."""
    quantity, parsed_unit = split_quantity(size)
    if quantity is not None:
        return quantity, text_or_none(unit) or parsed_unit
    if not isinstance(size, str) or not size.strip():
        return None, text_or_none(unit)
    digits = re.sub(r"[^\d.,]", "", size) or None
    letters = re.sub(r"[\d.,\s]", "", size) or None
    return digits, text_or_none(unit) or (letters.lower() if letters else None)


def strip_tag(tag: str) -> str:
    """Turn "en:milk-protein" into "milk protein"."""
    return _LOCALE_PREFIX.sub("", tag.strip().lower()).replace("-", " ").strip()


def normalize_tags(tags: object, free_text: object = None) -> list[str]:
    """Combine a tag list and a comma-separated string, deduplicated."""
    values: list[str] = []
    if isinstance(tags, list):
        values.extend(strip_tag(tag) for tag in tags if isinstance(tag, str))
    if isinstance(free_text, str):
        values.extend(strip_tag(part) for part in free_text.split(","))
    return unique([value for value in values if value])


def unique(values: Iterable[str]) -> list[str]:
    """Deduplicate while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def text_or_none(value: object) -> str | None:
    """Return a stripped string, None for blanks and non-strings."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def first_text(*values: object) -> str | None:
    """Return the first non-empty string."""
    for value in values:
        text = text_or_none(value)
        if text is not None:
            return text
    return None


def string_list(value: object) -> list[str]:
    """Keep the non-empty strings of a list payload."""
    if not isinstance(value, list):
        return []
    return unique(text for text in (text_or_none(item) for item in value) if text)


def number_or_none(value: object) -> float | None:
    """Coerce numeric payload values, ignoring booleans and junk."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "."))
        except ValueError:
            return None
    return None


def nested(payload: object, *path: str) -> object:
    """Walk nested dicts, returning None when any step is missing."""
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def build_nutrition(values: dict[str, object]) -> NutritionFacts | None:
    """Build NutritionFacts from candidate values; None when all are empty."""
    cleaned = {key: number_or_none(value) for key, value in values.items()}
    facts = NutritionFacts(**cleaned)
    return facts if facts.populated_count() else None
