from __future__ import annotations

import asyncio

from lectern.progress import ScrollMetrics, ScrollProgressTracker, compute_progress


def _metrics(scroll_top: float, scroll_height: float = 5000, client_height: float = 1000):
    return ScrollMetrics(scroll_top, scroll_height, client_height)


def test_percent_and_pages_left() -> None:
    assert compute_progress(_metrics(0, 1800)) == (0, 1)
    assert compute_progress(_metrics(400, 1800)) == (50, 1)
    assert compute_progress(_metrics(800, 1800)) == (100, 0)
    assert compute_progress(_metrics(0, 2600)) == (0, 2)
    assert compute_progress(_metrics(4, 1800)) == (1, 1)


def test_content_that_fits_reports_nothing_left() -> None:
    assert compute_progress(_metrics(0, 600)) == (0, 0)
    assert compute_progress(_metrics(0, 0, 0)) == (0, 0)


def test_overscroll_is_clamped() -> None:
    assert compute_progress(_metrics(5000, 1800)) == (100, 0)
    assert compute_progress(_metrics(-20, 1800)) == (0, 1)


def test_header_visibility_uses_hysteresis() -> None:
    tracker = ScrollProgressTracker()
    assert tracker.update(_metrics(100)).header_visible is False
    assert tracker.update(_metrics(95)).header_visible is False
    assert tracker.update(_metrics(80)).header_visible is True
    assert tracker.update(_metrics(200)).header_visible is False
    assert tracker.update(_metrics(205)).header_visible is False
    assert tracker.update(_metrics(30)).header_visible is True


def test_save_waits_for_flush_without_event_loop() -> None:
    saves: list[dict] = []
    tracker = ScrollProgressTracker(saves.append)
    tracker.update(_metrics(400, 1800))
    assert tracker.has_pending_save
    assert saves == []
    tracker.flush()
    assert len(saves) == 1
    assert saves[0]["scroll_top"] == 400
    assert saves[0]["percent"] == 50
    assert isinstance(saves[0]["timestamp"], float)
    tracker.flush()
    assert len(saves) == 1


def test_reset_drops_pending_save() -> None:
    saves: list[dict] = []
    tracker = ScrollProgressTracker(saves.append)
    tracker.update(_metrics(400))
    tracker.reset(120)
    tracker.flush()
    assert saves == []
    assert tracker.latest is None
    assert tracker.header_visible is True


def test_debounced_save_keeps_latest_position() -> None:
    saves: list[dict] = []
    tracker = ScrollProgressTracker(saves.append, save_delay=0.02, throttle=0)

    async def scenario():
        for scroll_top in (100, 200, 300):
            tracker.on_scroll(_metrics(scroll_top))
        assert saves == []
        await asyncio.sleep(0.08)

    asyncio.run(scenario())
    assert [entry["scroll_top"] for entry in saves] == [300]


def test_throttle_processes_trailing_event() -> None:
    tracker = ScrollProgressTracker(save_delay=10, throttle=0.03)

    async def scenario():
        first = tracker.on_scroll(_metrics(0, 1800))
        second = tracker.on_scroll(_metrics(200, 1800))
        third = tracker.on_scroll(_metrics(400, 1800))
        await asyncio.sleep(0.08)
        tracker.cancel()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first is not None and first.percent == 0
    assert second is None and third is None
    assert tracker.latest.percent == 50
