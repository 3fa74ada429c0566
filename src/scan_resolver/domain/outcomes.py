"""Outcomes produced by the resolution engine and the scan controller."""

from dataclasses import dataclass, field
from enum import Enum

from scan_resolver.domain.products import ResolvedProduct, SourceUsed


class LookupStatus(str, Enum):
    """Status of a single resolution."""

    EXACT_EAN = "exact_ean"
    NOT_FOUND = "not_found"


class ErrorKind(str, Enum):
    """Exhaustive set of user-facing scan error kinds."""

    INVALID_CODE = "invalid_code"
    NETWORK = "network"
    TIMEOUT = "timeout"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


class BarcodeType(str, Enum):
    """Barcode symbology as reported to the UI."""

    EAN13 = "EAN13"
    EAN8 = "EAN8"
    UPC = "UPC"
    CODE128 = "CODE128"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ResolutionResult:
    """Return value of the resolution engine."""

    gtin: str
    status: LookupStatus
    product: ResolvedProduct | None = None
    sources_used: list[SourceUsed] = field(default_factory=list)
    from_cache: bool = False
    stale: bool = False
    next_actions: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.EXACT_EAN and self.product is not None

    def to_payload(self) -> dict[str, object]:
        """JSON-ready representation shared by the API and the CLI."""
        return {
            "gtin": self.gtin,
            "status": self.status.value,
            "product": (
                self.product.model_dump(mode="json") if self.product else None
            ),
            "sources_used": [
                source.model_dump(mode="json") for source in self.sources_used
            ],
            "from_cache": self.from_cache,
            "stale": self.stale,
            "next_actions": list(self.next_actions),
        }


@dataclass(frozen=True)
class ScannerError:
    """Error details surfaced to the UI."""

    kind: ErrorKind
    message: str
    gtin: str | None = None
    timestamp: float | None = None


@dataclass(frozen=True)
class ProductOutcome:
    product: ResolvedProduct
    kind: str = "product"


@dataclass(frozen=True)
class NotFoundOutcome:
    gtin: str
    kind: str = "not_found"


@dataclass(frozen=True)
class ErrorOutcome:
    error: ScannerError
    kind: str = "error"

    @property
    def gtin(self) -> str | None:
        return self.error.gtin


ScanOutcome = ProductOutcome | NotFoundOutcome | ErrorOutcome


def barcode_type_for(gtin: str) -> BarcodeType:
    """Map a normalized GTIN to the barcode type shown to the UI."""
    length = len(gtin)
    if length == 13:
        return BarcodeType.EAN13
    if length == 8:
        return BarcodeType.EAN8
    if length == 12:
        return BarcodeType.UPC
    if 8 <= length <= 20:
        return BarcodeType.CODE128
    return BarcodeType.UNKNOWN
