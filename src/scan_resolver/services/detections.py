"""Subscription-based delivery of raw detections and scan outcomes."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Detection:
    """One raw detection event from the scanning input."""

    data: str
    barcode_type: str | None = None


class Subscription(Protocol):
    """Handle returned by ``subscribe``."""

    def unsubscribe(self) -> None:
        """Stop delivery; safe to call more than once."""


class DetectionStream(Protocol):
    """Source of raw detections with no rate or uniqueness guarantee."""

    def subscribe(self, listener: Callable[[Detection], None]) -> Subscription:
        """Register ``listener`` and return its unsubscribe handle."""


@dataclass(eq=False)
class _Handle(Generic[T]):
    channel: "Channel[T]" = field(repr=False)
    listener: Callable[[T], None]
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.channel._remove(self)


@dataclass(eq=False)
class Channel(Generic[T]):
    """Synchronous fan-out to subscribed listeners."""

    _handles: list[_Handle[T]] = field(default_factory=list)

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        handle = _Handle(channel=self, listener=listener)
        self._handles.append(handle)
        return handle

    def publish(self, item: T) -> None:
        for handle in list(self._handles):
            if not handle.active:
                continue
            try:
                handle.listener(item)
            except Exception:
                _logger.exception("Listener failed while handling %r", item)

    @property
    def subscriber_count(self) -> int:
        return len(self._handles)

    def _remove(self, handle: _Handle[T]) -> None:
        if handle in self._handles:
            self._handles.remove(handle)


class DetectionFeed(Channel[Detection]):
    """In-process detection stream fed by a scanning collaborator."""

    def emit(self, data: str, barcode_type: str | None = None) -> None:
        """Publish a raw detection."""
        self.publish(Detection(data=data, barcode_type=barcode_type))
