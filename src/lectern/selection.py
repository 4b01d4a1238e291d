from __future__ import annotations

from dataclasses import dataclass

from .chunking import ChunkedDocument, is_whitespace_token
from .reading_defaults import (
    BOOKMARK_PREVIEW_CHARS,
    DEFAULT_CONTEXT_WORD_COUNT,
    DEFAULT_TOOLBAR_OFFSET,
)

MODE_SINGLE = "single"
MODE_PHRASE = "phrase"
SELECTION_MODES = (MODE_SINGLE, MODE_PHRASE)

STATE_IDLE = "idle"
STATE_ANCHORED = "anchored"
STATE_RANGED = "ranged"


@dataclass(frozen=True)
class SelectionRange:
    start_token: int
    end_token: int
    mode: str

    def contains(self, token_index: int) -> bool:
        return self.start_token <= token_index <= self.end_token


@dataclass(frozen=True)
class AnchorPosition:
    top: float
    left: float


@dataclass(frozen=True)
class SelectionResult:
    text: str
    absolute_char_offset: int
    range: SelectionRange
    anchor: AnchorPosition | None = None
    context: str = ""

    @property
    def priority(self) -> str:
        return toolbar_priority(self.text)

    def to_payload(self) -> dict[str, object]:
        return {
            "text": self.text,
            "absolute_char_offset": self.absolute_char_offset,
            "start_token": self.range.start_token,
            "end_token": self.range.end_token,
            "mode": self.range.mode,
            "priority": self.priority,
            "context": self.context,
            "anchor": (
                {"top": self.anchor.top, "left": self.anchor.left}
                if self.anchor is not None
                else None
            ),
        }


def toolbar_priority(text: str) -> str:
    return "add" if " " in text else "explain"


def bookmark_preview(text: str, limit: int = BOOKMARK_PREVIEW_CHARS) -> str:
    text = text or ""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def extract_context_snippet(
    full_text: str,
    selection_text: str,
    selection_start: int,
    word_count: int = DEFAULT_CONTEXT_WORD_COUNT,
) -> str:
    """
    Return ``before [selection] after`` with up to ``word_count`` words on
    each side; ``...`` marks text cut off beyond that window.
    """
    if not full_text or not selection_text:
        return selection_text
    before_words = full_text[:selection_start].split()
    after_words = full_text[selection_start + len(selection_text) :].split()
    context_before = before_words[-word_count:] if word_count > 0 else []
    context_after = after_words[:word_count]

    snippet = f"[{selection_text}]"
    if context_before:
        snippet = f"{' '.join(context_before)} {snippet}"
    if context_after:
        snippet = f"{snippet} {' '.join(context_after)}"
    if len(before_words) > word_count:
        snippet = f"... {snippet}"
    if len(after_words) > word_count:
        snippet = f"{snippet} ..."
    return snippet


class SelectionMachine:
    """
    Click-driven selection over the global token sequence.

    In single mode every click selects one token. In phrase mode the first
    click drops an anchor and the second finalizes the range, in either
    order; a further click starts a new anchor.
    """

    def __init__(
        self,
        document: ChunkedDocument | None = None,
        *,
        mode: str = MODE_SINGLE,
        toolbar_offset: float = DEFAULT_TOOLBAR_OFFSET,
    ) -> None:
        if mode not in SELECTION_MODES:
            raise ValueError(f"Unknown selection mode: {mode}")
        self.document = document or ChunkedDocument()
        self.mode = mode
        self.toolbar_offset = toolbar_offset
        self.anchor_token: int | None = None
        self.range: SelectionRange | None = None
        self.result: SelectionResult | None = None

    @property
    def state(self) -> str:
        if self.range is not None:
            return STATE_RANGED
        if self.anchor_token is not None:
            return STATE_ANCHORED
        return STATE_IDLE

    def set_document(self, document: ChunkedDocument) -> None:
        self.document = document
        self.clear()

    def set_mode(self, mode: str) -> None:
        if mode not in SELECTION_MODES:
            raise ValueError(f"Unknown selection mode: {mode}")
        self.mode = mode
        self.clear()

    def clear(self) -> None:
        self.anchor_token = None
        self.range = None
        self.result = None

    def _selectable(self, token_index: int) -> bool:
        tokens = self.document.tokens
        if not isinstance(token_index, int) or not 0 <= token_index < len(tokens):
            return False
        return not is_whitespace_token(tokens[token_index])

    def click(
        self,
        token_index: int,
        position: tuple[float, float] | None = None,
    ) -> SelectionResult | None:
        """
        Apply a click on a token; ``position`` is the clicked element's top
        edge and horizontal centre in viewport coordinates.
        """
        if not self._selectable(token_index):
            return self.result

        if self.mode == MODE_PHRASE:
            if self.anchor_token is None or self.range is not None:
                self.clear()
                self.anchor_token = token_index
                return None
            start, end = sorted((self.anchor_token, token_index))
        else:
            start = end = token_index

        self.anchor_token = start
        self.range = SelectionRange(start, end, self.mode)
        self.result = self._finalize(self.range, position)
        if self.result is None:
            self.clear()
        return self.result

    def _finalize(
        self,
        selection: SelectionRange,
        position: tuple[float, float] | None,
    ) -> SelectionResult | None:
        tokens = self.document.tokens
        text = "".join(tokens[selection.start_token : selection.end_token + 1]).strip()
        if not text:
            return None
        offset = self.document.token_start_offset(selection.start_token)
        if offset is None:
            offset = sum(len(token) for token in tokens[: selection.start_token])
        anchor = None
        if position is not None:
            top, left = position
            anchor = AnchorPosition(top=float(top) - self.toolbar_offset, left=float(left))
        return SelectionResult(
            text=text,
            absolute_char_offset=offset,
            range=selection,
            anchor=anchor,
            context=extract_context_snippet(self.document.text, text, offset),
        )


__all__ = [
    "AnchorPosition",
    "MODE_PHRASE",
    "MODE_SINGLE",
    "SELECTION_MODES",
    "STATE_ANCHORED",
    "STATE_IDLE",
    "STATE_RANGED",
    "SelectionMachine",
    "SelectionRange",
    "SelectionResult",
    "bookmark_preview",
    "extract_context_snippet",
    "toolbar_priority",
]
