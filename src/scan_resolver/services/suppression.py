"""Throttled summaries for detections discarded by the controller guards."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from scan_resolver.app_logging import log_event

_logger = logging.getLogger(__name__)

SUPPRESSED_EVENT = "SCAN_DETECTED_SUPPRESSED"


@dataclass
class SuppressedEventLog:
    """Counts suppressed detections and logs them in throttled bursts.

    With ``log_first_immediately`` the first event after a quiet window is
    logged on its own and the rest are summarized; otherwise only summaries
    are written.
    """

    reason: str
    window_seconds: float
    log_first_immediately: bool
    enabled: bool = True
    clock: Callable[[], float] = time.monotonic
    total: int = 0
    _pending: int = field(default=0, init=False)
    _last_log_at: float | None = field(default=None, init=False)
    _summary_handle: asyncio.TimerHandle | None = field(default=None, init=False)

    def record(self) -> None:
        """Count one suppressed detection."""
        self.total += 1
        if not self.enabled:
            return
        now = self.clock()
        self._pending += 1

        last = self._last_log_at
        if last is not None and now - last < self.window_seconds:
            self._cancel_summary()
            remaining = self.window_seconds - (now - last)
            self._summary_handle = asyncio.get_running_loop().call_later(
                remaining, self._flush_summary
            )
            return

        if self.log_first_immediately:
            if self._pending > 1:
                self._log_summary(self._pending - 1)
            log_event(_logger, SUPPRESSED_EVENT, reason=self.reason)
            self._pending = 0
        elif self._pending > 1:
            self._log_summary(self._pending)
            self._pending = 0
        self._last_log_at = now
        self._cancel_summary()

    def close(self) -> None:
        """Cancel any scheduled summary."""
        self._cancel_summary()

    @property
    def pending(self) -> int:
        return self._pending

    def _flush_summary(self) -> None:
        self._summary_handle = None
        if self._pending > 0:
            self._log_summary(self._pending)
            self._pending = 0
            self._last_log_at = self.clock()

    def _log_summary(self, count: int) -> None:
        log_event(
            _logger,
            f"{SUPPRESSED_EVENT}_SUMMARY",
            reason=self.reason,
            count=count,
            window_ms=round(self.window_seconds * 1000),
        )

    def _cancel_summary(self) -> None:
        if self._summary_handle is not None:
            self._summary_handle.cancel()
            self._summary_handle = None
