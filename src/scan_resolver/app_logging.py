"""Logging configuration helpers."""

import logging


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging with a single stream handler."""
    logger = logging.getLogger("scan_resolver")
    logger.setLevel(level.upper())
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def log_event(
    logger: logging.Logger, event: str, enabled: bool = True, **details: object
) -> None:
    """Log a scan-flow event as ``EVENT key=value ...`` at INFO."""
    if not enabled:
        return
    suffix = " ".join(f"{key}={value}" for key, value in details.items())
    logger.info("SCAN_FLOW %s%s", event, f" {suffix}" if suffix else "")
