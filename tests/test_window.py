from __future__ import annotations

import pytest

from lectern.window import WindowManager


def test_rejects_bad_configuration() -> None:
    with pytest.raises(ValueError):
        WindowManager(3, estimate_size=0)
    with pytest.raises(ValueError):
        WindowManager(3, overscan=-1)


def test_unmeasured_rows_use_the_estimate() -> None:
    window = WindowManager(100, estimate_size=50, overscan=5, viewport_size=200)
    assert window.get_total_size() == 5000
    assert window.get_range() == (0, 8)
    items = window.get_virtual_items()
    assert [item.start for item in items[:3]] == [0, 50, 100]


def test_range_includes_overscan_on_both_sides() -> None:
    window = WindowManager(100, estimate_size=50, overscan=2, viewport_size=100)
    window.scroll_to_offset(1000)
    assert window.get_range() == (18, 23)


def test_empty_window_has_no_items() -> None:
    window = WindowManager(0)
    assert window.get_total_size() == 0
    assert window.get_range() is None
    assert window.get_virtual_items() == []
    assert window.scroll_to_index(0) is None


def test_measuring_a_row_above_the_viewport_keeps_content_in_place() -> None:
    window = WindowManager(20, estimate_size=50, overscan=0, viewport_size=100)
    window.scroll_to_offset(500)
    adjustment = window.measure_item(2, 80)
    assert adjustment == 30
    assert window.scroll_offset == 530
    assert window.get_item(3).start == 180
    assert window.get_total_size() == 1030


def test_measuring_a_row_below_the_offset_does_not_scroll() -> None:
    window = WindowManager(20, estimate_size=50, viewport_size=100)
    window.scroll_to_offset(100)
    assert window.measure_item(5, 10) == 0
    assert window.scroll_offset == 100
    assert window.is_measured(5)
    assert window.measure_item(99, 10) == 0


def test_measure_invalidates_every_height() -> None:
    window = WindowManager(5, estimate_size=50)
    window.measure_item(0, 120)
    window.measure_item(1, 20)
    assert window.get_total_size() == 290
    window.measure()
    assert window.get_total_size() == 250
    assert not window.is_measured(0)


def test_scroll_to_index_centres_and_clamps() -> None:
    window = WindowManager(100, estimate_size=50, viewport_size=200)
    assert window.scroll_to_index(10) == 425
    assert window.scroll_to_index(0) == 0
    assert window.scroll_to_index(99) == 4800
    assert window.get_offset_for_index(10, align="start") == 500
    assert window.get_offset_for_index(10, align="end") == 350
    with pytest.raises(ValueError):
        window.get_offset_for_index(10, align="middle")


def test_reset_keeps_the_resume_offset() -> None:
    window = WindowManager(3)
    window.measure_item(0, 10)
    window.reset(50, initial_offset=1200)
    assert window.count == 50
    assert window.scroll_offset == 1200
    assert not window.is_measured(0)


def test_keys_come_from_the_callback() -> None:
    window = WindowManager(3, viewport_size=100, get_item_key=lambda index: f"chunk-{index}")
    assert [item.key for item in window.get_virtual_items()] == ["chunk-0", "chunk-1", "chunk-2"]
