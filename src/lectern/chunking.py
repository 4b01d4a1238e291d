from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable

# Word runs, or whitespace runs closed by each newline they contain.
_TOKEN_RE = re.compile(r"\S+|[^\S\n]*\n|[^\S\n]+")
CHUNK_ID_PREFIX = "chunk-"


@dataclass(frozen=True)
class TextChunk:
    id: str
    text: str
    global_start_index: int
    global_word_index: int
    tokens: tuple[str, ...]

    @property
    def global_end_index(self) -> int:
        return self.global_start_index + len(self.text)

    @property
    def token_end_index(self) -> int:
        return self.global_word_index + len(self.tokens)

    def contains_char(self, char_index: int) -> bool:
        return self.global_start_index <= char_index < self.global_end_index

    def contains_token(self, token_index: int) -> bool:
        return self.global_word_index <= token_index < self.token_end_index


@dataclass(frozen=True)
class ChunkedDocument:
    """
    Immutable snapshot of a document split for virtualized rendering.

    ``tokens`` is the flat, document-wide token sequence; every chunk records
    where it starts in both the character space and the token space, so any
    coordinate can be mapped without rescanning the document.
    """

    chunks: tuple[TextChunk, ...] = ()
    tokens: tuple[str, ...] = ()
    document_id: str | None = None
    _char_starts: tuple[int, ...] = field(default=(), init=False, repr=False, compare=False)
    _token_starts: tuple[int, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_char_starts", tuple(chunk.global_start_index for chunk in self.chunks)
        )
        object.__setattr__(
            self, "_token_starts", tuple(chunk.global_word_index for chunk in self.chunks)
        )

    @property
    def text(self) -> str:
        return "".join(chunk.text for chunk in self.chunks)

    @property
    def length(self) -> int:
        if not self.chunks:
            return 0
        return self.chunks[-1].global_end_index

    def is_empty(self) -> bool:
        return not self.chunks

    def chunk_index_for_char(self, char_index: int) -> int | None:
        if not isinstance(char_index, int) or char_index < 0 or not self.chunks:
            return None
        idx = bisect_right(self._char_starts, char_index) - 1
        if idx < 0 or not self.chunks[idx].contains_char(char_index):
            return None
        return idx

    def chunk_index_for_token(self, token_index: int) -> int | None:
        if not isinstance(token_index, int) or token_index < 0 or not self.chunks:
            return None
        idx = bisect_right(self._token_starts, token_index) - 1
        if idx < 0 or not self.chunks[idx].contains_token(token_index):
            return None
        return idx

    def token_start_offset(self, token_index: int) -> int | None:
        """Character offset of a token, summed from its chunk's start."""
        chunk_index = self.chunk_index_for_token(token_index)
        if chunk_index is None:
            return None
        chunk = self.chunks[chunk_index]
        local = token_index - chunk.global_word_index
        return chunk.global_start_index + sum(len(token) for token in chunk.tokens[:local])


def split_into_tokens(text: str | None) -> list[str]:
    if not text:
        return []
    return _TOKEN_RE.findall(text)


def is_whitespace_token(token: str) -> bool:
    return not token or token.isspace()


def chunk_text_for_virtualization(
    text: str | None,
    document_id: str | None = None,
) -> ChunkedDocument:
    """
    Split text into newline-bounded chunks over a single global token list.

    The concatenation of every chunk's text reproduces the input exactly.
    Each line break closes a chunk, so blank lines become newline-only
    chunks of their own.
    """
    all_tokens = split_into_tokens(text)
    if not all_tokens:
        return ChunkedDocument(document_id=document_id)

    chunks: list[TextChunk] = []
    current: list[str] = []
    char_start = 0
    token_start = 0

    def flush(next_token_index: int) -> None:
        nonlocal char_start, token_start
        if not current:
            return
        chunk_text = "".join(current)
        chunks.append(
            TextChunk(
                id=f"{CHUNK_ID_PREFIX}{len(chunks)}",
                text=chunk_text,
                global_start_index=char_start,
                global_word_index=token_start,
                tokens=tuple(current),
            )
        )
        char_start += len(chunk_text)
        token_start = next_token_index
        current.clear()

    for index, token in enumerate(all_tokens):
        current.append(token)
        if "\n" in token:
            flush(index + 1)
    flush(len(all_tokens))

    return ChunkedDocument(
        chunks=tuple(chunks),
        tokens=tuple(all_tokens),
        document_id=document_id,
    )


def serialize_chunks(chunks: Iterable[TextChunk]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for chunk in chunks:
        payload.append(
            {
                "id": chunk.id,
                "text": chunk.text,
                "global_start_index": chunk.global_start_index,
                "global_word_index": chunk.global_word_index,
                "token_count": len(chunk.tokens),
            }
        )
    return payload


def chunk_summary(
    document: ChunkedDocument,
    preview_chars: int = 40,
) -> list[tuple[str, int, int, int, str]]:
    """Rows of ``(id, start, end, tokens, preview)`` for terminal listings."""
    rows = []
    for chunk in document.chunks:
        preview = chunk.text.rstrip("\n")
        if len(preview) > preview_chars:
            preview = preview[:preview_chars] + "..."
        rows.append(
            (chunk.id, chunk.global_start_index, chunk.global_end_index, len(chunk.tokens), preview)
        )
    return rows


__all__ = [
    "CHUNK_ID_PREFIX",
    "ChunkedDocument",
    "TextChunk",
    "chunk_summary",
    "chunk_text_for_virtualization",
    "is_whitespace_token",
    "serialize_chunks",
    "split_into_tokens",
]
