from __future__ import annotations

DEFAULT_ESTIMATE_SIZE = 50.0
DEFAULT_OVERSCAN = 5

DEFAULT_PAGE_HEIGHT = 800.0
DEFAULT_HEADER_TOP_ZONE = 50.0
DEFAULT_HEADER_THRESHOLD = 10.0
DEFAULT_SAVE_DELAY = 1.0
DEFAULT_SCROLL_THROTTLE = 0.05

DEFAULT_JUMP_ATTEMPTS = 10
DEFAULT_JUMP_DELAY = 0.1
DEFAULT_HIGHLIGHT_DURATION = 2.0

DEFAULT_TOOLBAR_OFFSET = 50.0
DEFAULT_CONTEXT_WORD_COUNT = 7
BOOKMARK_PREVIEW_CHARS = 50
DEFAULT_FONT_SIZE = 1.0

__all__ = [
    "BOOKMARK_PREVIEW_CHARS",
    "DEFAULT_CONTEXT_WORD_COUNT",
    "DEFAULT_ESTIMATE_SIZE",
    "DEFAULT_FONT_SIZE",
    "DEFAULT_HEADER_THRESHOLD",
    "DEFAULT_HEADER_TOP_ZONE",
    "DEFAULT_HIGHLIGHT_DURATION",
    "DEFAULT_JUMP_ATTEMPTS",
    "DEFAULT_JUMP_DELAY",
    "DEFAULT_OVERSCAN",
    "DEFAULT_PAGE_HEIGHT",
    "DEFAULT_SAVE_DELAY",
    "DEFAULT_SCROLL_THROTTLE",
    "DEFAULT_TOOLBAR_OFFSET",
]
