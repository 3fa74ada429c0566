"""Scan session controller.

Gates a noisy stream of raw detections into at most one lookup at a time.
State lives on two axes: ``scanning_enabled`` (paused or active) and
``locked`` (single-flight guard). Every lock acquisition is released by
exactly one of: acknowledgement (``dismiss``/``resume_scanning``), lookup
error, lookup timeout, manual reset, or the safety timeout.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx

from scan_resolver.app_logging import log_event
from scan_resolver.config import ScannerConfig
from scan_resolver.domain.cancellation import CancellationToken
from scan_resolver.domain.errors import (
    InvalidIdentifierError,
    LookupAbortedError,
    LookupTimeoutError,
    SourceUnavailableError,
    UnknownTransportError,
)
from scan_resolver.domain.gtin import normalize_code, validate_gtin
from scan_resolver.domain.outcomes import (
    BarcodeType,
    ErrorKind,
    ErrorOutcome,
    NotFoundOutcome,
    ProductOutcome,
    ResolutionResult,
    ScannerError,
    ScanOutcome,
    barcode_type_for,
)
from scan_resolver.services.detections import (
    Channel,
    Detection,
    DetectionStream,
    Subscription,
)
from scan_resolver.services.suppression import SuppressedEventLog

_logger = logging.getLogger(__name__)

_MESSAGES = {
    ErrorKind.TIMEOUT: "Lookup timed out - try again",
    ErrorKind.NETWORK: "Network error - try again",
    ErrorKind.ABORTED: "Lookup was cancelled",
    ErrorKind.UNKNOWN: "Something went wrong - try again",
}

_BACKGROUND_STATES = {"background", "inactive"}


class Resolver(Protocol):
    """The part of the resolution engine the controller drives."""

    async def resolve(
        self, code: str, token: CancellationToken | None = None
    ) -> ResolutionResult:
        """Resolve a validated code."""


@dataclass
class SessionState:
    """Read-only view of the controller for the UI."""

    scanning_enabled: bool = True
    locked: bool = False
    is_processing: bool = False
    outcome: ScanOutcome | None = None
    error: ScannerError | None = None
    last_scanned_code: str | None = None
    current_barcode_type: BarcodeType | None = None


class ScanSessionController:
    """Turns raw detections into single-flight, time-bounded lookups.

    All state changes happen on the event loop that delivers detections, so
    the lock is a logical flag rather than a mutex. Timers are named
    ``loop.call_later`` handles; a generation counter makes callbacks from a
    previous lock acquisition no-ops.
    """

    def __init__(
        self,
        engine: Resolver,
        config: ScannerConfig | None = None,
        *,
        on_scanned: Callable[[str, BarcodeType], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.config = config or ScannerConfig()
        self.on_scanned = on_scanned
        self.state = SessionState()
        self.debounced_count = 0
        self._clock = clock
        self._log = self.config.enable_logging
        self._outcomes: Channel[ScanOutcome] = Channel()
        self._debounce: tuple[str, float] | None = None
        self._retry: tuple[str, BarcodeType] | None = None
        self._generation = 0
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[None] | None = None
        self._lookup_timer: asyncio.TimerHandle | None = None
        self._safety_timer: asyncio.TimerHandle | None = None
        self._auto_resume_timer: asyncio.TimerHandle | None = None
        self._stream_subscription: Subscription | None = None
        self._focused = False
        self._closed = False
        self.suppressed_disabled = SuppressedEventLog(
            reason="scanning_disabled",
            window_seconds=1.0,
            log_first_immediately=False,
            enabled=self._log,
            clock=clock,
        )
        self.suppressed_lock = SuppressedEventLog(
            reason="lock_active",
            window_seconds=0.3,
            log_first_immediately=True,
            enabled=self._log,
            clock=clock,
        )

    # Subscriptions

    def attach(self, stream: DetectionStream) -> Subscription:
        """Consume detections from ``stream`` until ``close``."""
        if self._stream_subscription is not None:
            self._stream_subscription.unsubscribe()
        self._stream_subscription = stream.subscribe(self._on_detection)
        return self._stream_subscription

    def subscribe(self, listener: Callable[[ScanOutcome], None]) -> Subscription:
        """Receive every emitted outcome."""
        return self._outcomes.subscribe(listener)

    def _on_detection(self, detection: Detection) -> None:
        self.handle_detection(detection.data, detection.barcode_type)

    # Detection pipeline

    def handle_detection(
        self, data: str, barcode_type: str | None = None
    ) -> ScanOutcome | None:
        """Process one raw detection.

        Returns the outcome when it is decided in this turn (an invalid code),
        otherwise None; lookup outcomes arrive through ``subscribe``.
        """
        if self._closed:
            return None
        if not self.state.scanning_enabled:
            self.suppressed_disabled.record()
            return None
        if self.state.locked:
            self.suppressed_lock.record()
            return None
        return self._process(data, barcode_type, bypass_debounce=False)

    def _process(
        self, data: str, barcode_type: str | None, *, bypass_debounce: bool
    ) -> ScanOutcome | None:
        log_event(_logger, "SCAN_DETECTED", self._log, barcode=data)
        now = self._clock()
        normalized = normalize_code(data)
        window = self.config.debounce_ms / 1000
        if (
            not bypass_debounce
            and self._debounce is not None
            and self._debounce[0] == normalized
            and now - self._debounce[1] < window
        ):
            self.debounced_count += 1
            log_event(
                _logger, "SCAN_IGNORED", self._log, reason="debounce", code=normalized
            )
            return None
        self._debounce = (normalized, now)

        try:
            gtin = validate_gtin(normalized)
        except InvalidIdentifierError as exc:
            log_event(
                _logger, "SCAN_ERROR", self._log, reason="invalid_code", error=exc
            )
            error = ScannerError(
                kind=ErrorKind.INVALID_CODE,
                message=str(exc),
                gtin=normalized,
                timestamp=time.time(),
            )
            self.state.error = error
            outcome = ErrorOutcome(error=error)
            self._outcomes.publish(outcome)
            return outcome

        self._start_lookup(gtin, _barcode_type(barcode_type, gtin))
        return None

    def _start_lookup(self, gtin: str, barcode_type: BarcodeType) -> None:
        loop = asyncio.get_running_loop()
        self._cancel_auto_resume()
        self._generation += 1
        generation = self._generation

        self.state.locked = True
        self.state.is_processing = True
        self.state.last_scanned_code = gtin
        self.state.current_barcode_type = barcode_type
        self.state.error = None
        self.state.outcome = None
        self._retry = (gtin, barcode_type)
        log_event(_logger, "LOCK_SET", self._log, gtin=gtin)

        token = CancellationToken()
        self._token = token
        self._safety_timer = loop.call_later(
            self.config.safety_timeout_ms / 1000, self._on_safety_timeout, generation
        )
        self._lookup_timer = loop.call_later(
            self.config.lookup_timeout_ms / 1000,
            self._on_lookup_timeout,
            generation,
            gtin,
        )
        self._task = loop.create_task(
            self._run_lookup(gtin, barcode_type, token, generation)
        )

    async def _run_lookup(
        self,
        gtin: str,
        barcode_type: BarcodeType,
        token: CancellationToken,
        generation: int,
    ) -> None:
        started = self._clock()
        try:
            result = await self.engine.resolve(gtin, token)
        except asyncio.CancelledError:
            log_event(_logger, "LOOKUP_ABORTED", self._log, gtin=gtin)
            raise
        except Exception as exc:
            if self._superseded(generation, token):
                log_event(_logger, "LOOKUP_ABORTED", self._log, gtin=gtin)
                return
            log_event(
                _logger,
                "LOOKUP_ERROR",
                self._log,
                gtin=gtin,
                error=exc,
                latency_ms=self._elapsed_ms(started),
            )
            self._fail(gtin, exc, "lookup_error")
            return

        if self._superseded(generation, token):
            log_event(_logger, "LOOKUP_ABORTED", self._log, gtin=gtin)
            return

        self._cancel_lookup_timer()
        self.state.is_processing = False
        outcome: ScanOutcome
        if result.found and result.product is not None:
            outcome = ProductOutcome(product=result.product)
            event = "LOOKUP_SUCCESS"
        else:
            outcome = NotFoundOutcome(gtin=gtin)
            event = "LOOKUP_NOT_FOUND"
        log_event(
            _logger,
            event,
            self._log,
            gtin=gtin,
            latency_ms=self._elapsed_ms(started),
            from_cache=result.from_cache,
        )
        self._set_outcome(outcome)
        # The lock stays held until the result is acknowledged.
        self.pause_scanning()
        self._outcomes.publish(outcome)
        if self.on_scanned is not None:
            # Detached so a reset does not cancel the callback.
            if self._task is asyncio.current_task():
                self._task = None
            try:
                await self.on_scanned(gtin, barcode_type)
            except Exception:
                _logger.exception("on_scanned callback failed for %s", gtin)

    def _superseded(self, generation: int, token: CancellationToken) -> bool:
        return generation != self._generation or token.cancelled

    def _fail(self, gtin: str, exc: BaseException, reason: str) -> None:
        self._cancel_lookup_timer()
        kind = classify_error(exc)
        error = ScannerError(
            kind=kind, message=_MESSAGES[kind], gtin=gtin, timestamp=time.time()
        )
        self.state.error = error
        self.state.is_processing = False
        outcome = ErrorOutcome(error=error)
        self._set_outcome(outcome)
        self.pause_scanning()
        self._release_lock(reason)
        self._schedule_auto_resume(reason)
        self._outcomes.publish(outcome)

    def _set_outcome(self, outcome: ScanOutcome) -> None:
        self.state.outcome = outcome
        log_event(_logger, "OUTCOME_SET", self._log, kind=outcome.kind)

    # Timers

    def _on_lookup_timeout(self, generation: int, gtin: str) -> None:
        if generation != self._generation:
            return
        self._lookup_timer = None
        log_event(
            _logger,
            "LOOKUP_TIMEOUT",
            self._log,
            gtin=gtin,
            timeout_ms=self.config.lookup_timeout_ms,
        )
        if self._token is not None:
            self._token.cancel("lookup_timeout")
        self._fail(
            gtin,
            LookupTimeoutError(
                f"{gtin} not resolved within {self.config.lookup_timeout_ms} ms"
            ),
            "lookup_timeout",
        )

    def _on_safety_timeout(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._safety_timer = None
        log_event(
            _logger,
            "SAFETY_TIMEOUT",
            self._log,
            timeout_ms=self.config.safety_timeout_ms,
        )
        self._release_lock("safety_timeout")

    def _schedule_auto_resume(self, reason: str) -> None:
        if not self.config.auto_resume_on_error or self._closed:
            return
        self._cancel_auto_resume()
        self._auto_resume_timer = asyncio.get_running_loop().call_later(
            self.config.auto_resume_delay_ms / 1000, self._auto_resume, reason
        )

    def _auto_resume(self, reason: str) -> None:
        self._auto_resume_timer = None
        log_event(_logger, "AUTO_RESUME", self._log, after=reason)
        self.resume_scanning()

    def _cancel_lookup_timer(self) -> None:
        if self._lookup_timer is not None:
            self._lookup_timer.cancel()
            self._lookup_timer = None

    def _cancel_auto_resume(self) -> None:
        if self._auto_resume_timer is not None:
            self._auto_resume_timer.cancel()
            self._auto_resume_timer = None

    def _release_lock(self, reason: str) -> None:
        """Release the lock and everything tied to it; idempotent."""
        log_event(_logger, "LOCK_RESET", self._log, reason=reason)
        self._generation += 1
        self._cancel_lookup_timer()
        if self._safety_timer is not None:
            self._safety_timer.cancel()
            self._safety_timer = None
        if self._token is not None:
            self._token.cancel(reason)
            self._token = None
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self.state.locked:
            self.state.locked = False
            self.state.is_processing = False
            self.state.current_barcode_type = None
            log_event(_logger, "LOCK_RELEASED", self._log, reason=reason)
        self._debounce = None

    # External controls

    @property
    def is_scanning_enabled(self) -> bool:
        return self.state.scanning_enabled

    @property
    def is_processing(self) -> bool:
        return self.state.is_processing

    @property
    def locked(self) -> bool:
        return self.state.locked

    def pause_scanning(self) -> None:
        """Stop accepting detections; the lock is left as is."""
        if self.state.scanning_enabled:
            log_event(_logger, "SCANNING_PAUSED", self._log)
        self.state.scanning_enabled = False

    def resume_scanning(self) -> None:
        """Accept detections again, force-clearing any held lock."""
        self._release_lock("resume_scanning")
        self.state.scanning_enabled = True
        log_event(_logger, "SCANNING_RESUMED", self._log, reason="manual")

    def reset_scanner(self, reason: str = "manual") -> None:
        """Clear outcome, error, lock and timers. Does not resume scanning."""
        log_event(_logger, "SCANNER_RESET", self._log, reason=reason)
        self._cancel_auto_resume()
        self._release_lock(reason)
        self.state.error = None
        self.state.outcome = None
        self.state.last_scanned_code = None
        self.state.current_barcode_type = None
        self._retry = None

    def clear_error(self) -> None:
        """Clear the current error and outcome."""
        self.state.error = None
        self.state.outcome = None

    def dismiss(self) -> None:
        """Acknowledge the shown result and start scanning again."""
        self.reset_scanner("dismiss")
        self.resume_scanning()

    def retry_last_scan(self) -> bool:
        """Replay the last validated code; refused while locked or paused."""
        if self._retry is None or self.state.locked or not self.state.scanning_enabled:
            return False
        gtin, barcode_type = self._retry
        log_event(_logger, "RETRY_SCAN", self._log, barcode=gtin)
        self.clear_error()
        self._process(gtin, barcode_type.value, bypass_debounce=True)
        return True

    # Lifecycle

    def on_focus(self) -> None:
        """Screen gained focus."""
        self._focused = True
        log_event(_logger, "SCREEN_FOCUSED", self._log)
        self.reset_scanner("screen_focused")

    def on_blur(self) -> None:
        """Screen lost focus."""
        self._focused = False
        log_event(_logger, "SCREEN_BLURRED", self._log)

    def on_app_state_change(self, app_state: str) -> None:
        """React to the host application moving to/from the foreground."""
        if app_state in _BACKGROUND_STATES:
            log_event(_logger, "APP_BACKGROUND", self._log)
            self.reset_scanner("app_background")
        elif app_state == "active" and self._focused:
            log_event(_logger, "APP_FOREGROUND", self._log)
            self.reset_scanner("app_foreground")

    def close(self) -> None:
        """Tear down: release the lock, cancel timers, stop consuming input."""
        self._release_lock("unmount")
        self._cancel_auto_resume()
        self.suppressed_disabled.close()
        self.suppressed_lock.close()
        if self._stream_subscription is not None:
            self._stream_subscription.unsubscribe()
            self._stream_subscription = None
        self._closed = True

    async def wait_settled(self) -> None:
        """Wait until the in-flight lookup task, if any, has finished."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    def _elapsed_ms(self, started: float) -> int:
        return round((self._clock() - started) * 1000)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a lookup failure to the user-facing error kind."""
    if isinstance(exc, InvalidIdentifierError):
        return ErrorKind.INVALID_CODE
    if isinstance(exc, LookupAbortedError):
        return ErrorKind.ABORTED
    if isinstance(exc, LookupTimeoutError | TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(
        exc, SourceUnavailableError | UnknownTransportError | httpx.HTTPError | OSError
    ):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def _barcode_type(raw: str | None, gtin: str) -> BarcodeType:
    if raw is not None:
        try:
            return BarcodeType(raw)
        except ValueError:
            pass
    return barcode_type_for(gtin)
