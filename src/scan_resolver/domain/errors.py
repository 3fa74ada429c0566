"""Error taxonomy for product resolution and scanning."""


class ScanResolverError(Exception):
    """Base error for the scan resolver."""


class InvalidIdentifierError(ScanResolverError):
    """Raised when a scanned code is not a valid GTIN."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        reason: str,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.reason = reason
        self.expected = expected
        self.actual = actual


class SourceUnavailableError(ScanResolverError):
    """Raised by a source client on transport or protocol failure."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class LookupTimeoutError(ScanResolverError):
    """Raised when a lookup exceeds its deadline."""


class LookupAbortedError(ScanResolverError):
    """Raised when a lookup was cancelled before it settled."""


class UnknownTransportError(ScanResolverError):
    """Raised for transport failures that fit no other category."""


class ConfigurationError(ScanResolverError, ValueError):
    """Raised when configuration values are inconsistent."""
