from __future__ import annotations

import re
from typing import Iterable

from .chunking import ChunkedDocument, is_whitespace_token

_STRIP_RE = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")


def normalize_word(text: str) -> str:
    """Lower-case and drop the punctuation ignored when matching annotations."""
    if not isinstance(text, str):
        return ""
    return _STRIP_RE.sub("", text.lower())


def normalize_entries(entries: Iterable[str]) -> list[tuple[str, ...]]:
    """Turn annotation words/phrases into tuples of normalized words."""
    normalized: list[tuple[str, ...]] = []
    seen: set[tuple[str, ...]] = set()
    for entry in entries:
        if not isinstance(entry, str):
            continue
        words = tuple(word for word in (normalize_word(part) for part in entry.split()) if word)
        if not words or words in seen:
            continue
        seen.add(words)
        normalized.append(words)
    return normalized


def highlighted_token_indices(
    document: ChunkedDocument,
    entries: Iterable[str],
) -> frozenset[int]:
    """
    Return the global indices of every word token covered by an annotation.

    Single words match a token whose normalized form equals the word.
    Phrases match runs of consecutive word tokens; the whitespace tokens
    between them are not compared.
    """
    phrases = normalize_entries(entries)
    if not phrases or document.is_empty():
        return frozenset()

    singles = {words[0] for words in phrases if len(words) == 1}
    multi: dict[str, list[tuple[str, ...]]] = {}
    for words in phrases:
        if len(words) > 1:
            multi.setdefault(words[0], []).append(words)

    word_positions: list[int] = []
    word_values: list[str] = []
    for index, token in enumerate(document.tokens):
        if is_whitespace_token(token):
            continue
        word_positions.append(index)
        word_values.append(normalize_word(token))

    covered: set[int] = set()
    for pos, value in enumerate(word_values):
        if not value:
            continue
        if value in singles:
            covered.add(word_positions[pos])
        for words in multi.get(value, ()):
            end = pos + len(words)
            if end > len(word_values):
                continue
            if tuple(word_values[pos:end]) == words:
                covered.update(word_positions[pos:end])
    return frozenset(covered)


__all__ = ["highlighted_token_indices", "normalize_entries", "normalize_word"]
