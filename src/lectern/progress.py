from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from .logging_utils import debug_log
from .reading_defaults import (
    DEFAULT_HEADER_THRESHOLD,
    DEFAULT_HEADER_TOP_ZONE,
    DEFAULT_PAGE_HEIGHT,
    DEFAULT_SAVE_DELAY,
    DEFAULT_SCROLL_THROTTLE,
)

SaveCallback = Callable[[Mapping[str, object]], None]


@dataclass(frozen=True)
class ScrollMetrics:
    """One read of the scroll container, shared by every scroll consumer."""

    scroll_top: float
    scroll_height: float
    client_height: float

    @property
    def max_scroll(self) -> float:
        return max(self.scroll_height - self.client_height, 0.0)


@dataclass(frozen=True)
class ScrollProgress:
    percent: int
    pages_left: int
    header_visible: bool

    def to_payload(self) -> dict[str, object]:
        return {
            "percent": self.percent,
            "pages_left": self.pages_left,
            "header_visible": self.header_visible,
        }


def compute_progress(
    metrics: ScrollMetrics,
    page_height: float = DEFAULT_PAGE_HEIGHT,
) -> tuple[int, int]:
    max_scroll = metrics.max_scroll
    if max_scroll <= 0:
        return 0, 0
    scroll_top = min(max(metrics.scroll_top, 0.0), max_scroll)
    percent = int(math.floor(scroll_top / max_scroll * 100 + 0.5))
    pages_left = max(0, math.ceil((max_scroll - scroll_top) / page_height))
    return percent, pages_left


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class ScrollProgressTracker:
    def __init__(
        self,
        save: SaveCallback | None = None,
        *,
        page_height: float = DEFAULT_PAGE_HEIGHT,
        top_zone: float = DEFAULT_HEADER_TOP_ZONE,
        threshold: float = DEFAULT_HEADER_THRESHOLD,
        save_delay: float = DEFAULT_SAVE_DELAY,
        throttle: float = DEFAULT_SCROLL_THROTTLE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.save = save
        self.page_height = page_height
        self.top_zone = top_zone
        self.threshold = threshold
        self.save_delay = save_delay
        self.throttle = throttle
        self.clock = clock
        self.header_visible = True
        self.latest: ScrollProgress | None = None
        self._last_scroll_top = 0.0
        self._last_update: float | None = None
        self._pending_payload: dict[str, object] | None = None
        self._save_handle: asyncio.TimerHandle | None = None
        self._trailing_metrics: ScrollMetrics | None = None
        self._trailing_handle: asyncio.TimerHandle | None = None

    @property
    def has_pending_save(self) -> bool:
        return self._pending_payload is not None

    def reset(self, scroll_top: float = 0.0) -> None:
        self.cancel()
        self.header_visible = True
        self.latest = None
        self._last_scroll_top = max(0.0, scroll_top)
        self._last_update = None

    def on_scroll(self, metrics: ScrollMetrics) -> ScrollProgress | None:
        """
        Throttled entry point for scroll events.

        Events inside the throttle window are folded into one trailing
        update, so the last position of a burst is always processed.
        """
        now = self.clock()
        loop = _running_loop()
        if (
            loop is None
            or self.throttle <= 0
            or self._last_update is None
            or now - self._last_update >= self.throttle
        ):
            self._cancel_trailing()
            return self.update(metrics)
        self._trailing_metrics = metrics
        if self._trailing_handle is None:
            wait = self.throttle - (now - self._last_update)
            self._trailing_handle = loop.call_later(max(0.0, wait), self._run_trailing)
        return None

    def _run_trailing(self) -> None:
        self._trailing_handle = None
        metrics = self._trailing_metrics
        self._trailing_metrics = None
        if metrics is not None:
            self.update(metrics)

    def _cancel_trailing(self) -> None:
        if self._trailing_handle is not None:
            self._trailing_handle.cancel()
        self._trailing_handle = None
        self._trailing_metrics = None

    def update(self, metrics: ScrollMetrics) -> ScrollProgress:
        self._last_update = self.clock()
        percent, pages_left = compute_progress(metrics, self.page_height)

        current = metrics.scroll_top
        delta = current - self._last_scroll_top
        if current <= self.top_zone:
            self.header_visible = True
        elif delta > self.threshold:
            self.header_visible = False
        elif delta < -self.threshold:
            self.header_visible = True
        self._last_scroll_top = current

        progress = ScrollProgress(percent, pages_left, self.header_visible)
        self.latest = progress
        self._schedule_save(
            {"scroll_top": current, "percent": percent, "timestamp": time.time()}
        )
        return progress

    def _schedule_save(self, payload: dict[str, object]) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        self._pending_payload = payload
        loop = _running_loop()
        if loop is not None:
            self._save_handle = loop.call_later(self.save_delay, self.flush)

    def flush(self) -> None:
        """Deliver the pending save now."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        payload = self._pending_payload
        self._pending_payload = None
        if payload is None or self.save is None:
            return
        debug_log(f"progress save scroll_top={payload['scroll_top']} percent={payload['percent']}")
        self.save(payload)

    def cancel(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = None
        self._pending_payload = None
        self._cancel_trailing()


__all__ = [
    "ScrollMetrics",
    "ScrollProgress",
    "ScrollProgressTracker",
    "compute_progress",
]
