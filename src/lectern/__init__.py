from .chunking import ChunkedDocument, TextChunk, chunk_text_for_virtualization, split_into_tokens
from .config import ReaderConfig, load_reader_config
from .progress import ScrollMetrics, ScrollProgress, ScrollProgressTracker, compute_progress
from .reader import create_reader_app
from .resolver import AddressResolver, TokenLocation, resolve_char_index
from .selection import SelectionMachine, SelectionRange, SelectionResult
from .store import DocumentNotFoundError, DocumentStore
from .view import ReaderView
from .window import VirtualItem, WindowManager

__all__ = [
    "ChunkedDocument",
    "TextChunk",
    "chunk_text_for_virtualization",
    "split_into_tokens",
    "WindowManager",
    "VirtualItem",
    "AddressResolver",
    "TokenLocation",
    "resolve_char_index",
    "SelectionMachine",
    "SelectionRange",
    "SelectionResult",
    "ScrollMetrics",
    "ScrollProgress",
    "ScrollProgressTracker",
    "compute_progress",
    "ReaderView",
    "ReaderConfig",
    "load_reader_config",
    "DocumentStore",
    "DocumentNotFoundError",
    "create_reader_app",
]
