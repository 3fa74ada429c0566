"""Tests for the scan session controller."""

import asyncio

import pytest

from scan_resolver.config import ScannerConfig
from scan_resolver.domain.errors import (
    InvalidIdentifierError,
    LookupAbortedError,
    LookupTimeoutError,
    SourceUnavailableError,
    UnknownTransportError,
)
from scan_resolver.domain.outcomes import (
    BarcodeType,
    ErrorKind,
    ErrorOutcome,
    NotFoundOutcome,
    ProductOutcome,
    ScanOutcome,
)
from scan_resolver.services.detections import DetectionFeed
from scan_resolver.services.scanner import ScanSessionController, classify_error
from tests.conftest import (
    COCA_COLA,
    NUTELLA,
    FakeClock,
    FakeResolver,
    FakeSourceClient,
    make_product,
    make_record,
    registry_record,
)


def _controller(
    engine, clock: FakeClock | None = None, **config: object
) -> tuple[ScanSessionController, list[ScanOutcome]]:  # type: ignore[no-untyped-def]
    controller = ScanSessionController(
        engine,
        ScannerConfig(**config),
        clock=clock or FakeClock(),
    )
    outcomes: list[ScanOutcome] = []
    controller.subscribe(outcomes.append)
    return controller, outcomes


def test_product_scan_pauses_until_dismissed(engine_factory) -> None:
    community = FakeSourceClient(
        name="openfoodfacts",
        record=make_record(brand="Coca-Cola", image_urls=["https://off.test/a.jpg"]),
    )
    registry = FakeSourceClient(
        name="gs1-trade-exact",
        record=registry_record(title="Coca-Cola Original Taste"),
    )
    engine = engine_factory(community, registry)

    async def run() -> None:
        controller, outcomes = _controller(engine)

        assert controller.handle_detection(COCA_COLA, "EAN13") is None
        assert controller.locked
        assert controller.is_processing
        await controller.wait_settled()

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert isinstance(outcome, ProductOutcome)
        assert outcome.product.title == "Coca-Cola Original Taste"
        assert outcome.product.brand == "Coca-Cola"
        assert controller.state.outcome == outcome
        assert not controller.is_scanning_enabled
        assert controller.locked
        assert not controller.is_processing

        controller.dismiss()

        assert controller.is_scanning_enabled
        assert not controller.locked
        assert controller.state.outcome is None
        controller.close()

    asyncio.run(run())


def test_listener_can_dismiss_product_immediately() -> None:
    engine = FakeResolver(product=make_product())

    async def run() -> None:
        controller = ScanSessionController(engine, clock=FakeClock())
        seen: list[ScanOutcome] = []

        def acknowledge(outcome: ScanOutcome) -> None:
            seen.append(outcome)
            controller.dismiss()

        controller.subscribe(acknowledge)
        controller.handle_detection(COCA_COLA)
        await controller.wait_settled()

        assert len(seen) == 1
        assert isinstance(seen[0], ProductOutcome)
        assert controller.is_scanning_enabled
        assert not controller.locked
        assert controller.state.outcome is None
        controller.close()

    asyncio.run(run())


def test_listener_can_resume_after_error() -> None:
    engine = FakeResolver(error=SourceUnavailableError("openfoodfacts", "HTTP 503"))

    async def run() -> None:
        controller = ScanSessionController(engine, clock=FakeClock())
        controller.subscribe(lambda outcome: controller.resume_scanning())
        controller.handle_detection(COCA_COLA)
        await controller.wait_settled()

        assert controller.is_scanning_enabled
        assert not controller.locked
        assert isinstance(controller.state.outcome, ErrorOutcome)
        controller.close()

    asyncio.run(run())


def test_invalid_code_errors_without_network(engine_factory) -> None:
    client = FakeSourceClient(record=make_record())
    engine = engine_factory(client)
    controller, outcomes = _controller(engine)

    outcome = controller.handle_detection("1234567890")

    assert isinstance(outcome, ErrorOutcome)
    assert outcome.error.kind is ErrorKind.INVALID_CODE
    assert outcomes == [outcome]
    assert controller.state.error == outcome.error
    assert client.calls == []
    assert engine.network_lookups == 0
    assert not controller.locked
    assert controller.is_scanning_enabled


def test_not_found_keeps_lock_until_acknowledged() -> None:
    engine = FakeResolver(product=None)

    async def run() -> None:
        controller, outcomes = _controller(engine)
        controller.handle_detection(NUTELLA)
        await controller.wait_settled()

        assert outcomes == [NotFoundOutcome(gtin=NUTELLA)]
        assert controller.locked
        controller.handle_detection(NUTELLA)
        controller.handle_detection(COCA_COLA)
        assert engine.calls == [NUTELLA]

        controller.resume_scanning()
        assert not controller.locked
        controller.close()

    asyncio.run(run())


def test_debounce_counts_repeats_once() -> None:
    clock = FakeClock()
    controller, outcomes = _controller(FakeResolver(), clock=clock)

    first = controller.handle_detection("1234567890")
    repeat = controller.handle_detection("1234567890")
    other = controller.handle_detection("123456789")
    clock.advance(0.9)
    later = controller.handle_detection("123456789")

    assert first is not None
    assert repeat is None
    assert other is not None
    assert later is not None
    assert controller.debounced_count == 1
    assert len(outcomes) == 3


def test_lookup_timeout_cancels_and_reports() -> None:
    engine = FakeResolver(hang=True)

    async def run() -> None:
        controller, outcomes = _controller(
            engine, lookup_timeout_ms=20, safety_timeout_ms=1000
        )
        controller.handle_detection(COCA_COLA)
        await asyncio.sleep(0.1)

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert isinstance(outcome, ErrorOutcome)
        assert outcome.error.kind is ErrorKind.TIMEOUT
        assert outcome.gtin == COCA_COLA
        assert engine.tokens[0] is not None
        assert engine.tokens[0].cancelled
        assert engine.tokens[0].reason == "lookup_timeout"
        assert not controller.locked
        assert not controller.is_processing
        assert not controller.is_scanning_enabled
        controller.close()

    asyncio.run(run())


def test_safety_timeout_releases_hung_lookup() -> None:
    engine = FakeResolver(hang=True)

    async def run() -> None:
        # Both deadlines expire together; the safety timer is armed first.
        controller, outcomes = _controller(
            engine, lookup_timeout_ms=50, safety_timeout_ms=50
        )
        controller.handle_detection(COCA_COLA)
        assert controller.locked

        await asyncio.sleep(0.1)

        assert engine.tokens[0] is not None
        assert engine.tokens[0].reason == "safety_timeout"
        assert outcomes == []
        assert not controller.locked
        assert not controller.is_processing
        assert controller.is_scanning_enabled
        controller.close()

    asyncio.run(run())


def test_safety_timeout_releases_unacknowledged_result() -> None:
    engine = FakeResolver(product=make_product())

    async def run() -> None:
        controller, outcomes = _controller(
            engine, lookup_timeout_ms=20, safety_timeout_ms=40
        )
        controller.handle_detection(COCA_COLA)
        await controller.wait_settled()
        assert controller.locked

        await asyncio.sleep(0.08)

        assert not controller.locked
        assert not controller.is_scanning_enabled
        assert isinstance(outcomes[0], ProductOutcome)
        controller.close()

    asyncio.run(run())


def test_network_error_releases_lock_and_auto_resumes() -> None:
    engine = FakeResolver(error=SourceUnavailableError("openfoodfacts", "HTTP 503"))

    async def run() -> None:
        controller, outcomes = _controller(
            engine, auto_resume_on_error=True, auto_resume_delay_ms=10
        )
        controller.handle_detection(COCA_COLA)
        await controller.wait_settled()

        outcome = outcomes[0]
        assert isinstance(outcome, ErrorOutcome)
        assert outcome.error.kind is ErrorKind.NETWORK
        assert not controller.locked
        assert not controller.is_scanning_enabled

        await asyncio.sleep(0.05)

        assert controller.is_scanning_enabled
        controller.close()

    asyncio.run(run())


def test_retry_refused_while_paused_or_locked() -> None:
    engine = FakeResolver(error=RuntimeError("boom"))

    async def run() -> None:
        controller, outcomes = _controller(engine)
        assert not controller.retry_last_scan()

        controller.handle_detection(COCA_COLA)
        await controller.wait_settled()
        assert outcomes[0].kind == "error"
        assert not controller.retry_last_scan()

        controller.resume_scanning()
        engine.hang = True
        assert controller.retry_last_scan()
        assert controller.locked
        assert not controller.retry_last_scan()
        await asyncio.sleep(0)
        assert engine.calls == [COCA_COLA, COCA_COLA]
        controller.close()

    asyncio.run(run())


def test_reset_drops_superseded_lookup() -> None:
    engine = FakeResolver(delay=0.02, product=make_product())

    async def run() -> None:
        controller, outcomes = _controller(engine)
        controller.handle_detection(COCA_COLA)
        await asyncio.sleep(0)

        controller.on_app_state_change("background")
        await asyncio.sleep(0.05)

        assert outcomes == []
        assert not controller.locked
        assert engine.tokens[0] is not None
        assert engine.tokens[0].cancelled
        controller.close()

    asyncio.run(run())


def test_foreground_resets_only_when_focused() -> None:
    controller, outcomes = _controller(FakeResolver())
    controller.handle_detection("1234567890")
    assert controller.state.error is not None

    controller.on_blur()
    controller.on_app_state_change("active")
    assert controller.state.error is not None

    controller.on_focus()
    assert controller.state.error is None
    controller.handle_detection("123456789")
    controller.on_app_state_change("active")
    assert controller.state.error is None


def test_attached_stream_collapses_bursts() -> None:
    engine = FakeResolver(product=make_product())
    feed = DetectionFeed()

    async def run() -> None:
        controller, outcomes = _controller(engine)
        controller.attach(feed)
        for _ in range(10):
            feed.emit(COCA_COLA, "EAN13")
        await controller.wait_settled()
        for _ in range(5):
            feed.emit(COCA_COLA, "EAN13")

        assert engine.calls == [COCA_COLA]
        assert len(outcomes) == 1
        assert controller.suppressed_lock.total == 9
        assert controller.suppressed_disabled.total == 5

        controller.close()
        assert feed.subscriber_count == 0

    asyncio.run(run())


def test_suppression_counters_are_per_controller() -> None:
    engine = FakeResolver(hang=True)

    async def run() -> None:
        first, _ = _controller(engine)
        second, _ = _controller(FakeResolver())
        first.handle_detection(COCA_COLA)
        for _ in range(3):
            first.handle_detection(COCA_COLA)

        assert first.suppressed_lock.total == 3
        assert second.suppressed_lock.total == 0
        first.close()
        second.close()

    asyncio.run(run())


def test_on_scanned_callback_receives_code_and_type() -> None:
    seen: list[tuple[str, BarcodeType]] = []

    async def on_scanned(gtin: str, barcode_type: BarcodeType) -> None:
        seen.append((gtin, barcode_type))

    async def run() -> None:
        controller = ScanSessionController(
            FakeResolver(product=make_product()), on_scanned=on_scanned
        )
        controller.handle_detection(COCA_COLA)
        await asyncio.sleep(0.01)
        controller.close()

    asyncio.run(run())
    assert seen == [(COCA_COLA, BarcodeType.EAN13)]


def test_close_ignores_further_detections() -> None:
    engine = FakeResolver()
    controller, outcomes = _controller(engine)
    controller.close()

    assert controller.handle_detection("1234567890") is None
    assert outcomes == []


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (SourceUnavailableError("coop", "HTTP 500"), ErrorKind.NETWORK),
        (UnknownTransportError("socket closed"), ErrorKind.NETWORK),
        (LookupTimeoutError("deadline"), ErrorKind.TIMEOUT),
        (LookupAbortedError("reset"), ErrorKind.ABORTED),
        (
            InvalidIdentifierError("bad", code="1", reason="length"),
            ErrorKind.INVALID_CODE,
        ),
        (RuntimeError("boom"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_error(error: Exception, kind: ErrorKind) -> None:
    assert classify_error(error) is kind
