from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable

from .reading_defaults import DEFAULT_ESTIMATE_SIZE, DEFAULT_OVERSCAN

_ALIGNMENTS = {"start", "center", "end", "auto"}


@dataclass(frozen=True)
class VirtualItem:
    index: int
    key: str | int
    start: float
    size: float

    @property
    def end(self) -> float:
        return self.start + self.size

    def to_payload(self) -> dict[str, object]:
        return {
            "index": self.index,
            "key": self.key,
            "start": self.start,
            "size": self.size,
        }


class WindowManager:
    """
    Virtualizes a list of variable-height rows against a scrolling viewport.

    Every row starts at ``estimate_size`` and keeps that height until the
    rendered height is reported through :meth:`measure_item`. Row offsets are
    prefix sums over the current sizes and are rebuilt lazily after any
    size change, so the total scroll height stays consistent while only the
    rows near the viewport are mounted.
    """

    def __init__(
        self,
        count: int = 0,
        *,
        estimate_size: float = DEFAULT_ESTIMATE_SIZE,
        overscan: int = DEFAULT_OVERSCAN,
        initial_offset: float = 0.0,
        viewport_size: float = 0.0,
        get_item_key: Callable[[int], str | int] | None = None,
    ) -> None:
        if estimate_size <= 0:
            raise ValueError("estimate_size must be positive.")
        if overscan < 0:
            raise ValueError("overscan must be non-negative.")
        self.count = max(0, int(count))
        self.estimate_size = float(estimate_size)
        self.overscan = int(overscan)
        self.viewport_size = max(0.0, float(viewport_size))
        self.scroll_offset = max(0.0, float(initial_offset))
        self.get_item_key = get_item_key
        self._sizes: dict[int, float] = {}
        self._items: list[VirtualItem] | None = None
        self._starts: list[float] = []

    # -- layout -----------------------------------------------------------

    def _key_for(self, index: int) -> str | int:
        if self.get_item_key is None:
            return index
        return self.get_item_key(index)

    def _measurements(self) -> list[VirtualItem]:
        if self._items is None:
            items: list[VirtualItem] = []
            cursor = 0.0
            for index in range(self.count):
                size = self._sizes.get(index, self.estimate_size)
                items.append(VirtualItem(index, self._key_for(index), cursor, size))
                cursor += size
            self._items = items
            self._starts = [item.start for item in items]
        return self._items

    def _invalidate_layout(self) -> None:
        self._items = None
        self._starts = []

    def get_total_size(self) -> float:
        items = self._measurements()
        return items[-1].end if items else 0.0

    def get_item(self, index: int) -> VirtualItem | None:
        items = self._measurements()
        if 0 <= index < len(items):
            return items[index]
        return None

    def is_measured(self, index: int) -> bool:
        return index in self._sizes

    def _visible_range(self) -> tuple[int, int] | None:
        items = self._measurements()
        if not items:
            return None
        first = max(0, bisect_right(self._starts, self.scroll_offset) - 1)
        last = first
        limit = self.scroll_offset + self.viewport_size
        while last + 1 < len(items) and items[last + 1].start < limit:
            last += 1
        return first, last

    def get_range(self) -> tuple[int, int] | None:
        """Inclusive ``(first, last)`` row indices to mount, overscan included."""
        visible = self._visible_range()
        if visible is None:
            return None
        first, last = visible
        return max(0, first - self.overscan), min(self.count - 1, last + self.overscan)

    def get_virtual_items(self) -> list[VirtualItem]:
        window = self.get_range()
        if window is None:
            return []
        items = self._measurements()
        first, last = window
        return items[first : last + 1]

    # -- measurement ------------------------------------------------------

    def measure_item(self, index: int, size: float) -> float:
        """
        Record the rendered height of a row.

        Returns the scroll adjustment applied. When a row above the current
        offset changes height, the offset moves by the same delta so the
        content under the viewport stays where the reader left it.
        """
        if not 0 <= index < self.count:
            return 0.0
        size = max(0.0, float(size))
        item = self.get_item(index)
        if item is None or item.size == size:
            self._sizes[index] = size
            return 0.0
        delta = size - item.size
        self._sizes[index] = size
        self._invalidate_layout()
        if item.start < self.scroll_offset:
            self.scroll_offset = max(0.0, self.scroll_offset + delta)
            return delta
        return 0.0

    def measure(self) -> None:
        """Drop every measured height; rows fall back to the estimate."""
        self._sizes.clear()
        self._invalidate_layout()

    def reset(self, count: int, *, initial_offset: float | None = None) -> None:
        self.count = max(0, int(count))
        self._sizes.clear()
        self._invalidate_layout()
        if initial_offset is not None:
            self.scroll_offset = max(0.0, float(initial_offset))

    def set_viewport_size(self, size: float) -> None:
        self.viewport_size = max(0.0, float(size))

    # -- scrolling --------------------------------------------------------

    def _max_offset(self) -> float:
        return max(0.0, self.get_total_size() - self.viewport_size)

    def get_offset_for_index(self, index: int, align: str = "auto") -> float | None:
        if align not in _ALIGNMENTS:
            raise ValueError(f"Unknown alignment: {align}")
        item = self.get_item(index)
        if item is None:
            return None
        if align == "auto":
            if item.end >= self.scroll_offset + self.viewport_size:
                align = "end"
            elif item.start <= self.scroll_offset:
                align = "start"
            else:
                return self.scroll_offset
        if align == "start":
            target = item.start
        elif align == "end":
            target = item.end - self.viewport_size
        else:
            target = item.start - self.viewport_size / 2 + item.size / 2
        return min(max(0.0, target), self._max_offset())

    def scroll_to_offset(self, offset: float) -> float:
        self.scroll_offset = max(0.0, float(offset))
        return self.scroll_offset

    def scroll_to_index(self, index: int, align: str = "center") -> float | None:
        offset = self.get_offset_for_index(index, align)
        if offset is None:
            return None
        return self.scroll_to_offset(offset)


__all__ = ["VirtualItem", "WindowManager"]
