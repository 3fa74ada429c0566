"""GTIN normalization and GS1 checksum validation.

Supports EAN-8, UPC-A (12 digits), EAN-13 and GTIN-14.
"""

import re
from enum import Enum

from scan_resolver.domain.errors import InvalidIdentifierError

VALID_LENGTHS = frozenset({8, 12, 13, 14})

_SEPARATORS = re.compile(r"[\s-]")


class GtinType(str, Enum):
    """GTIN family member, derived from the code length."""

    EAN_8 = "EAN-8"
    UPC_A = "UPC-A"
    EAN_13 = "EAN-13"
    GTIN_14 = "GTIN-14"
    UNKNOWN = "UNKNOWN"


_TYPES_BY_LENGTH = {
    8: GtinType.EAN_8,
    12: GtinType.UPC_A,
    13: GtinType.EAN_13,
    14: GtinType.GTIN_14,
}


def normalize_code(code: str) -> str:
    """Strip whitespace and hyphen separators from a scanned code."""
    return _SEPARATORS.sub("", code).strip()


def calculate_check_digit(body: str) -> int:
    """Return the GS1 check digit for the digits preceding it.

    Weights alternate 3, 1, 3, 1, ... starting from the rightmost body digit.
    """
    total = 0
    weight = 3
    for char in reversed(body):
        total += int(char) * weight
        weight = 1 if weight == 3 else 3
    return (10 - (total % 10)) % 10


def validate_gtin(code: str) -> str:
    """Return the normalized GTIN or raise InvalidIdentifierError."""
    normalized = normalize_code(code)
    if len(normalized) not in VALID_LENGTHS:
        raise InvalidIdentifierError(
            f"Invalid GTIN length: {len(normalized)}. Expected 8, 12, 13 or 14 digits.",
            code=normalized,
            reason="length",
        )
    if not normalized.isascii() or not normalized.isdigit():
        raise InvalidIdentifierError(
            "GTIN must contain digits only",
            code=normalized,
            reason="non_digit",
        )

    actual = int(normalized[-1])
    expected = calculate_check_digit(normalized[:-1])
    if actual != expected:
        raise InvalidIdentifierError(
            f"Invalid GTIN checksum (expected {expected}, got {actual})",
            code=normalized,
            reason="checksum",
            expected=expected,
            actual=actual,
        )
    return normalized


def is_valid_gtin(code: str) -> bool:
    """Return True when the code passes validation."""
    try:
        validate_gtin(code)
    except InvalidIdentifierError:
        return False
    return True


def detect_gtin_type(code: str) -> GtinType:
    """Detect the GTIN type from the normalized length."""
    return _TYPES_BY_LENGTH.get(len(normalize_code(code)), GtinType.UNKNOWN)
