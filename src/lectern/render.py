from __future__ import annotations

from html import escape
from typing import AbstractSet

from .chunking import TextChunk, is_whitespace_token
from .selection import SelectionRange

TOKEN_ID_PREFIX = "word-"


def token_dom_id(token_index: int) -> str:
    return f"{TOKEN_ID_PREFIX}{token_index}"


def render_chunk_html(
    chunk: TextChunk,
    *,
    highlighted: AbstractSet[int] = frozenset(),
    selection: SelectionRange | None = None,
    anchor_token: int | None = None,
    target_token: int | None = None,
    bookmarked: bool = False,
    phrase_mode: bool = False,
) -> str:
    """
    Render one chunk as a paragraph of token spans.

    Word tokens carry ``id="word-<global index>"`` so a deep link can find
    them once mounted; whitespace is emitted as-is and is not clickable.
    """
    parts: list[str] = [
        f'<div class="reading-paragraph" data-chunk="{escape(chunk.id)}">'
    ]
    if bookmarked:
        parts.append('<span class="bookmark-marker" title="Bookmarked"></span>')
    cursor = "cursor-alias" if phrase_mode else "cursor-pointer"
    for local_index, token in enumerate(chunk.tokens):
        global_index = chunk.global_word_index + local_index
        if is_whitespace_token(token):
            parts.append(f"<span>{escape(token)}</span>")
            continue
        is_anchor = phrase_mode and selection is None and anchor_token == global_index
        in_range = selection is not None and selection.contains(global_index)
        is_target = target_token == global_index
        classes = ["token", cursor]
        if is_anchor:
            classes.append("anchor")
        elif in_range:
            classes.append("range")
        if is_target:
            classes.append("target")
        body = escape(token)
        if global_index in highlighted and not (in_range or is_anchor or is_target):
            body = f'<span class="underline">{body}</span>'
        parts.append(
            f'<span id="{token_dom_id(global_index)}" data-index="{global_index}" '
            f'class="{" ".join(classes)}">{body}</span>'
        )
    parts.append("</div>")
    return "".join(parts)


__all__ = ["TOKEN_ID_PREFIX", "render_chunk_html", "token_dom_id"]
