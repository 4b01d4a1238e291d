from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .annotations import highlighted_token_indices
from .chunking import (
    ChunkedDocument,
    TextChunk,
    chunk_text_for_virtualization,
    is_whitespace_token,
)
from .config import ReaderConfig
from .logging_utils import debug_log
from .progress import ScrollMetrics, ScrollProgress, ScrollProgressTracker
from .reading_defaults import DEFAULT_FONT_SIZE
from .render import render_chunk_html
from .resolver import AddressResolver, TokenLocation
from .selection import (
    MODE_PHRASE,
    MODE_SINGLE,
    SelectionMachine,
    SelectionResult,
    bookmark_preview,
)
from .store import DocumentNotFoundError, DocumentStore
from .window import VirtualItem, WindowManager


@dataclass(frozen=True)
class MountedToken:
    token_index: int
    chunk_index: int
    top: float


class ReaderView:
    """
    Headless reading surface for one document at a time.

    The view owns the chunk snapshot and routes every event through its
    components: a scroll offset is read once and handed to the window
    manager, the selection machine and the progress tracker alike. Token
    elements are mounted by :meth:`render`, which runs on the loop tick
    after the window moves, as a browser paints after a scroll.
    """

    def __init__(
        self,
        config: ReaderConfig | None = None,
        *,
        store: DocumentStore | None = None,
    ) -> None:
        self.config = config or ReaderConfig(root=Path("."))
        self.store = store
        self.document = ChunkedDocument()
        self.document_id: str | None = None
        self.font_size = DEFAULT_FONT_SIZE
        self.client_height = 0.0
        self.window = WindowManager(
            0,
            estimate_size=self.config.estimate_size,
            overscan=self.config.overscan,
            get_item_key=self._chunk_key,
        )
        self.selection = SelectionMachine(toolbar_offset=self.config.toolbar_offset)
        self.progress = ScrollProgressTracker(
            self._save_progress,
            page_height=self.config.page_height,
            top_zone=self.config.header_top_zone,
            threshold=self.config.header_threshold,
            save_delay=self.config.save_delay,
            throttle=self.config.scroll_throttle,
        )
        self.resolver = AddressResolver(
            self,
            attempts=self.config.jump_attempts,
            delay=self.config.jump_delay,
            highlight_duration=self.config.highlight_duration,
        )
        self.target_token: int | None = None
        self.annotation_entries: list[str] = []
        self.highlighted: frozenset[int] = frozenset()
        self.bookmarks: list[dict[str, object]] = []
        self._mounted: dict[int, MountedToken] = {}
        self._render_handle: asyncio.Handle | None = None
        self._render_loop: asyncio.AbstractEventLoop | None = None

    def _chunk_key(self, index: int) -> str:
        return self.document.chunks[index].id

    # -- document lifecycle ----------------------------------------------

    def load(
        self,
        document_id: str | None,
        text: str | None,
        *,
        initial_offset: float = 0.0,
        bookmarks: Iterable[Mapping[str, object]] = (),
    ) -> ChunkedDocument:
        """Replace the open document; the old snapshot is dropped whole."""
        self.resolver.cancel()
        self.progress.flush()
        self.progress.reset(initial_offset)
        self.document = chunk_text_for_virtualization(text, document_id=document_id)
        self.document_id = document_id
        self.window.reset(len(self.document.chunks), initial_offset=initial_offset)
        self.selection.set_document(self.document)
        self.target_token = None
        self.bookmarks = [dict(entry) for entry in bookmarks]
        self.highlighted = highlighted_token_indices(self.document, self.annotation_entries)
        self._mounted.clear()
        self._cancel_render()
        debug_log(
            f"loaded {document_id!r}: {len(self.document.chunks)} chunks, "
            f"{len(self.document.tokens)} tokens"
        )
        self.request_render()
        return self.document

    def close(self) -> None:
        self.resolver.cancel()
        self.progress.flush()
        self._cancel_render()

    # -- rendering --------------------------------------------------------

    def _cancel_render(self) -> None:
        if self._render_handle is not None:
            self._render_handle.cancel()
        self._render_handle = None

    def request_render(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.render()
            return
        if self._render_handle is None or self._render_loop is not loop:
            self._render_handle = loop.call_soon(self._render_scheduled)
            self._render_loop = loop

    def _render_scheduled(self) -> None:
        self._render_handle = None
        self.render()

    def render(self) -> list[VirtualItem]:
        items = self.window.get_virtual_items()
        mounted: dict[int, MountedToken] = {}
        for item in items:
            chunk = self.document.chunks[item.index]
            text_length = max(len(chunk.text), 1)
            consumed = 0
            for local_index, token in enumerate(chunk.tokens):
                # Whitespace renders without a word-N id, so it is never mounted.
                if not is_whitespace_token(token):
                    top = item.start + item.size * (consumed / text_length)
                    token_index = chunk.global_word_index + local_index
                    mounted[token_index] = MountedToken(token_index, item.index, top)
                consumed += len(token)
        self._mounted = mounted
        return items

    def find_token_element(self, token_index: int) -> MountedToken | None:
        return self._mounted.get(token_index)

    def scroll_token_into_view(self, token_index: int) -> float | None:
        element = self._mounted.get(token_index)
        if element is None:
            return None
        max_offset = max(0.0, self.window.get_total_size() - self.client_height)
        target = min(max(0.0, element.top - self.client_height / 2), max_offset)
        self.handle_scroll(target)
        return target

    def set_target_token(self, token_index: int | None) -> None:
        self.target_token = token_index

    def is_bookmarked(self, chunk: TextChunk) -> bool:
        for entry in self.bookmarks:
            start_index = entry.get("start_index")
            if isinstance(start_index, int) and chunk.contains_char(start_index):
                return True
        return False

    def chunk_html(self, index: int) -> str:
        chunk = self.document.chunks[index]
        return render_chunk_html(
            chunk,
            highlighted=self.highlighted,
            selection=self.selection.range,
            anchor_token=self.selection.anchor_token,
            target_token=self.target_token,
            bookmarked=self.is_bookmarked(chunk),
            phrase_mode=self.selection.mode == MODE_PHRASE,
        )

    # -- events -----------------------------------------------------------

    def metrics(self, scroll_top: float) -> ScrollMetrics:
        return ScrollMetrics(
            scroll_top=max(0.0, float(scroll_top)),
            scroll_height=self.window.get_total_size(),
            client_height=self.client_height,
        )

    def set_viewport(self, client_height: float) -> None:
        self.client_height = max(0.0, float(client_height))
        self.window.set_viewport_size(self.client_height)

    def handle_scroll(
        self,
        scroll_top: float,
        client_height: float | None = None,
    ) -> ScrollProgress | None:
        if client_height is not None:
            self.set_viewport(client_height)
        metrics = self.metrics(scroll_top)
        self.window.scroll_to_offset(metrics.scroll_top)
        self.selection.clear()
        self.progress.on_scroll(metrics)
        self.request_render()
        return self.progress.latest

    def set_font_size(self, font_size: float) -> bool:
        """Invalidate every measured height when the type size changes."""
        if font_size <= 0:
            raise ValueError("font_size must be positive.")
        if font_size == self.font_size:
            return False
        self.font_size = float(font_size)
        self.window.measure()
        self.request_render()
        return True

    def report_measurements(self, heights: Mapping[int, float]) -> float:
        adjustment = 0.0
        for index, height in sorted(heights.items()):
            adjustment += self.window.measure_item(index, height)
        if heights:
            self.request_render()
        return adjustment

    def click(
        self,
        token_index: int,
        position: tuple[float, float] | None = None,
    ) -> SelectionResult | None:
        return self.selection.click(token_index, position)

    def set_mode(self, mode: str) -> None:
        self.selection.set_mode(mode)

    def toggle_phrase_mode(self) -> str:
        mode = MODE_SINGLE if self.selection.mode == MODE_PHRASE else MODE_PHRASE
        self.set_mode(mode)
        return mode

    def set_annotations(self, entries: Iterable[str]) -> frozenset[int]:
        self.annotation_entries = [entry for entry in entries if isinstance(entry, str)]
        self.highlighted = highlighted_token_indices(self.document, self.annotation_entries)
        return self.highlighted

    async def jump_to(self, document_id: str | None, char_index: int) -> TokenLocation | None:
        """Deep-link entry point: scroll to ``char_index`` of ``document_id``."""
        return await self.resolver.jump_to(document_id, char_index)

    def add_bookmark_from_selection(self) -> dict[str, object] | None:
        result = self.selection.result
        if result is None or self.document_id is None:
            return None
        bookmark = {
            "start_index": result.absolute_char_offset,
            "text_preview": bookmark_preview(result.text),
        }
        if self.store is not None:
            bookmark = self.store.save_bookmark(self.document_id, bookmark)
        self.bookmarks.append(dict(bookmark))
        self.selection.clear()
        return bookmark

    def _save_progress(self, payload: Mapping[str, object]) -> None:
        if self.store is None or self.document_id is None:
            return
        try:
            self.store.save_progress(self.document_id, payload)
        except DocumentNotFoundError as exc:
            debug_log(f"progress not saved: {exc}")

    # -- payloads ---------------------------------------------------------

    def window_payload(self) -> dict[str, object]:
        items = self.window.get_virtual_items()
        latest = self.progress.latest
        result = self.selection.result
        return {
            "document_id": self.document_id,
            "total_size": self.window.get_total_size(),
            "scroll_offset": self.window.scroll_offset,
            "font_size": self.font_size,
            "items": [
                {
                    **item.to_payload(),
                    "measured": self.window.is_measured(item.index),
                    "html": self.chunk_html(item.index),
                }
                for item in items
            ],
            "progress": latest.to_payload() if latest is not None else None,
            "selection": result.to_payload() if result is not None else None,
            "anchor_token": self.selection.anchor_token,
            "mode": self.selection.mode,
            "target_token": self.target_token,
        }


__all__ = ["MountedToken", "ReaderView"]
