from __future__ import annotations

from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

from .logging_utils import debug_log
from .store import DOCUMENT_SUFFIX

ChangeCallback = Callable[[Path], None]


class DocumentChangeHandler(FileSystemEventHandler):
    """Forward edits to ``.txt`` documents so open views re-chunk them."""

    def __init__(self, root: Path, on_change: ChangeCallback) -> None:
        self.root = root
        self.on_change = on_change

    def _forward(self, raw_path: str | bytes) -> None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if path.suffix.lower() != DOCUMENT_SUFFIX:
            return
        try:
            path.resolve().relative_to(self.root)
        except ValueError:
            return
        self.on_change(path)

    def on_created(self, event) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._forward(event.src_path)

    def on_modified(self, event) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._forward(event.dest_path)


def start_document_watch(root: Path, on_change: ChangeCallback) -> PollingObserver | None:
    try:
        observer = PollingObserver()
        observer.schedule(DocumentChangeHandler(root, on_change), str(root), recursive=True)
        observer.start()
    except OSError as exc:
        debug_log(f"document watch disabled: {exc}")
        return None
    return observer


__all__ = ["DocumentChangeHandler", "start_document_watch"]
