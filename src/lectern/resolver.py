from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .chunking import ChunkedDocument
from .logging_utils import debug_log
from .reading_defaults import (
    DEFAULT_HIGHLIGHT_DURATION,
    DEFAULT_JUMP_ATTEMPTS,
    DEFAULT_JUMP_DELAY,
)

if TYPE_CHECKING:
    from .view import ReaderView


@dataclass(frozen=True)
class TokenLocation:
    chunk_index: int
    token_index: int
    local_index: int
    char_start: int
    token: str

    @property
    def char_end(self) -> int:
        return self.char_start + len(self.token)

    def to_payload(self) -> dict[str, object]:
        return {
            "chunk_index": self.chunk_index,
            "token_index": self.token_index,
            "local_index": self.local_index,
            "char_start": self.char_start,
            "char_end": self.char_end,
            "token": self.token,
        }


def resolve_char_index(document: ChunkedDocument, char_index: object) -> TokenLocation | None:
    """Map an absolute character offset to the token that contains it."""
    if isinstance(char_index, bool) or not isinstance(char_index, int):
        return None
    chunk_index = document.chunk_index_for_char(char_index)
    if chunk_index is None:
        return None
    chunk = document.chunks[chunk_index]
    local_offset = char_index - chunk.global_start_index
    running = 0
    for local_index, token in enumerate(chunk.tokens):
        token_start = running
        running += len(token)
        if running > local_offset:
            return TokenLocation(
                chunk_index=chunk_index,
                token_index=chunk.global_word_index + local_index,
                local_index=local_index,
                char_start=chunk.global_start_index + token_start,
                token=token,
            )
    return None


class AddressResolver:
    """
    Two-phase scroll to a character offset inside a :class:`ReaderView`.

    The macro phase centres the owning chunk through the window manager.
    The token element only exists once the view has rendered that window,
    so the micro phase re-checks for it a bounded number of times, yielding
    to the event loop between checks. A jump never raises: an unknown
    offset, a document switch or an exhausted retry budget ends it quietly.
    """

    def __init__(
        self,
        view: ReaderView,
        *,
        attempts: int = DEFAULT_JUMP_ATTEMPTS,
        delay: float = DEFAULT_JUMP_DELAY,
        highlight_duration: float = DEFAULT_HIGHLIGHT_DURATION,
    ) -> None:
        self.view = view
        self.attempts = max(0, int(attempts))
        self.delay = max(0.0, float(delay))
        self.highlight_duration = highlight_duration
        self._task: asyncio.Task[TokenLocation | None] | None = None
        self._highlight_handle: asyncio.TimerHandle | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def start_jump(
        self, document_id: str | None, char_index: int
    ) -> asyncio.Task[TokenLocation | None]:
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._run(document_id, char_index))
        self._task = task
        return task

    async def jump_to(self, document_id: str | None, char_index: int) -> TokenLocation | None:
        task = self.start_jump(document_id, char_index)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return None

    def _same_document(self, document_id: str | None, document: ChunkedDocument) -> bool:
        return self.view.document_id == document_id and self.view.document is document

    async def _run(self, document_id: str | None, char_index: int) -> TokenLocation | None:
        view = self.view
        document = view.document
        if view.document_id != document_id:
            debug_log(f"jump skipped: {document_id!r} is not the open document")
            return None
        location = resolve_char_index(document, char_index)
        if location is None:
            debug_log(f"jump skipped: no chunk contains offset {char_index!r}")
            return None

        view.window.scroll_to_index(location.chunk_index, align="center")
        view.request_render()

        for attempt in range(self.attempts + 1):
            if not self._same_document(document_id, document):
                debug_log("jump abandoned: document changed")
                return None
            if view.find_token_element(location.token_index) is not None:
                view.scroll_token_into_view(location.token_index)
                self._highlight(location.token_index)
                return location
            if attempt < self.attempts:
                await asyncio.sleep(self.delay)
        debug_log(
            f"jump gave up: token {location.token_index} not mounted after "
            f"{self.attempts} retries"
        )
        return None

    def _highlight(self, token_index: int) -> None:
        if self._highlight_handle is not None:
            self._highlight_handle.cancel()
        self.view.set_target_token(token_index)
        loop = asyncio.get_running_loop()
        self._highlight_handle = loop.call_later(
            self.highlight_duration, self._clear_highlight, token_index
        )

    def _clear_highlight(self, token_index: int) -> None:
        self._highlight_handle = None
        if self.view.target_token == token_index:
            self.view.set_target_token(None)


__all__ = ["AddressResolver", "TokenLocation", "resolve_char_index"]
