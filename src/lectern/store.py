from __future__ import annotations

import json
import os
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Mapping

from .logging_utils import debug_log

STATE_SUFFIX = ".reading.json"
STATE_VERSION = 1
DOCUMENT_SUFFIX = ".txt"


class DocumentNotFoundError(LookupError):
    """Raised when a document id does not name a readable text file under the root."""


def is_document_file(path: Path) -> bool:
    return (
        path.is_file()
        and path.suffix.lower() == DOCUMENT_SUFFIX
        and not path.name.startswith(".")
    )


def state_path_for(document_path: Path) -> Path:
    return document_path.with_name(document_path.name + STATE_SUFFIX)


def _empty_state() -> dict[str, object]:
    return {"version": STATE_VERSION, "progress": None, "bookmarks": []}


def _normalize_progress(entry: object) -> dict[str, object] | None:
    if not isinstance(entry, Mapping):
        return None
    scroll_top = entry.get("scroll_top")
    percent = entry.get("percent")
    timestamp = entry.get("timestamp")
    if not isinstance(scroll_top, (int, float)) or isinstance(scroll_top, bool):
        return None
    return {
        "scroll_top": float(max(scroll_top, 0)),
        "percent": int(percent) if isinstance(percent, (int, float)) else 0,
        "timestamp": float(timestamp) if isinstance(timestamp, (int, float)) else None,
    }


def _normalize_bookmarks(payload: object) -> list[dict[str, object]]:
    if not isinstance(payload, list):
        return []
    entries: list[dict[str, object]] = []
    seen_ids: set[str] = set()
    for entry in payload:
        if not isinstance(entry, Mapping):
            continue
        start_index = entry.get("start_index")
        if not isinstance(start_index, int) or isinstance(start_index, bool) or start_index < 0:
            continue
        entry_id = entry.get("id")
        if not isinstance(entry_id, str) or not entry_id.strip():
            entry_id = uuid.uuid4().hex
        if entry_id in seen_ids:
            continue
        seen_ids.add(entry_id)
        preview = entry.get("text_preview")
        created_at = entry.get("created_at")
        entries.append(
            {
                "id": entry_id,
                "start_index": start_index,
                "text_preview": preview if isinstance(preview, str) else "",
                "created_at": created_at if isinstance(created_at, (int, float)) else None,
            }
        )
    return entries


def load_state_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return _empty_state()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return _empty_state()
    if not isinstance(raw, dict):
        return _empty_state()
    return {
        "version": STATE_VERSION,
        "progress": _normalize_progress(raw.get("progress")),
        "bookmarks": _normalize_bookmarks(raw.get("bookmarks")),
    }


def save_state_file(path: Path, state: Mapping[str, object]) -> None:
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(state, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


class WriteQueue:
    """
    Background queue for store writes.

    Callers push and move on; a failed write is recorded in ``last_error``
    and logged, never raised back to the caller.
    """

    def __init__(self, max_workers: int = 1) -> None:
        workers = max_workers
        env_workers = os.getenv("LECTERN_WRITE_WORKERS")
        if env_workers:
            try:
                parsed = int(env_workers)
                if parsed > 0:
                    workers = parsed
            except ValueError:
                workers = max_workers
        workers = max(1, min(workers, 4))
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lectern-write")
        self.lock = threading.Lock()
        self.last_error: str | None = None
        self._futures: set[Future[None]] = set()

    def push(self, label: str, job: Callable[[], None]) -> None:
        future = self.executor.submit(self._run, label, job)
        with self.lock:
            self._futures.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: Future[None]) -> None:
        with self.lock:
            self._futures.discard(future)

    def _run(self, label: str, job: Callable[[], None]) -> None:
        try:
            job()
        except OSError as exc:
            message = f"{label}: {exc.__class__.__name__}: {exc}"
            with self.lock:
                self.last_error = message
            debug_log(f"write failed {message}")

    def pending_count(self) -> int:
        with self.lock:
            return sum(1 for future in self._futures if not future.done())

    def drain(self, timeout: float | None = None) -> bool:
        with self.lock:
            futures = list(self._futures)
        if not futures:
            return True
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True, cancel_futures=False)


class DocumentStore:
    """Plain-text documents under ``root`` with a JSON sidecar of reading state."""

    def __init__(self, root: Path, *, queue: WriteQueue | None = None) -> None:
        resolved = root.expanduser().resolve()
        if not resolved.exists() or not resolved.is_dir():
            raise FileNotFoundError(f"Documents root not found: {resolved}")
        self.root = resolved
        self.queue = queue or WriteQueue()
        self.state_lock = threading.Lock()

    def resolve_document(self, document_id: str) -> Path:
        if not isinstance(document_id, str) or not document_id.strip():
            raise DocumentNotFoundError("Document id is required.")
        candidate = (self.root / document_id).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise DocumentNotFoundError(f"Document escapes the root: {document_id}") from exc
        if not candidate.exists() or not is_document_file(candidate):
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return candidate

    def document_id_for(self, path: Path) -> str:
        return path.resolve().relative_to(self.root).as_posix()

    def read_text(self, document_id: str) -> str:
        path = self.resolve_document(document_id)
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return path.read_text(encoding="utf-8", errors="ignore")

    def load_state(self, document_id: str) -> dict[str, object]:
        path = self.resolve_document(document_id)
        with self.state_lock:
            return load_state_file(state_path_for(path))

    def load_progress(self, document_id: str) -> dict[str, object] | None:
        progress = self.load_state(document_id).get("progress")
        return progress if isinstance(progress, dict) else None

    def list_bookmarks(self, document_id: str) -> list[dict[str, object]]:
        bookmarks = self.load_state(document_id).get("bookmarks")
        if not isinstance(bookmarks, list):
            return []
        return sorted(bookmarks, key=lambda entry: entry.get("start_index") or 0)

    def _update_state(self, path: Path, mutate: Callable[[dict[str, object]], bool]) -> None:
        state_path = state_path_for(path)
        with self.state_lock:
            state = load_state_file(state_path)
            if mutate(state):
                save_state_file(state_path, state)

    def save_progress(self, document_id: str, progress: Mapping[str, object]) -> None:
        path = self.resolve_document(document_id)
        entry = _normalize_progress(progress)
        if entry is None:
            raise ValueError("progress requires a numeric scroll_top.")
        if entry["timestamp"] is None:
            entry["timestamp"] = time.time()

        def _apply(state: dict[str, object]) -> bool:
            current = state.get("progress")
            if isinstance(current, dict):
                previous = current.get("timestamp")
                if isinstance(previous, (int, float)) and previous > entry["timestamp"]:
                    return False
            state["progress"] = entry
            return True

        self.queue.push(f"progress {document_id}", lambda: self._update_state(path, _apply))

    def save_bookmark(self, document_id: str, bookmark: Mapping[str, object]) -> dict[str, object]:
        path = self.resolve_document(document_id)
        start_index = bookmark.get("start_index")
        if not isinstance(start_index, int) or isinstance(start_index, bool) or start_index < 0:
            raise ValueError("start_index must be a non-negative integer.")
        preview = bookmark.get("text_preview")
        entry: dict[str, object] = {
            "id": uuid.uuid4().hex,
            "start_index": start_index,
            "text_preview": preview if isinstance(preview, str) else "",
            "created_at": time.time(),
        }

        def _apply(state: dict[str, object]) -> bool:
            bookmarks = state.get("bookmarks")
            if not isinstance(bookmarks, list):
                bookmarks = []
            bookmarks.append(dict(entry))
            state["bookmarks"] = bookmarks
            return True

        self.queue.push(f"bookmark {document_id}", lambda: self._update_state(path, _apply))
        return entry

    def remove_bookmark(self, document_id: str, bookmark_id: str) -> bool:
        path = self.resolve_document(document_id)
        removed = False

        def _apply(state: dict[str, object]) -> bool:
            nonlocal removed
            bookmarks = state.get("bookmarks")
            if not isinstance(bookmarks, list):
                return False
            filtered = [entry for entry in bookmarks if entry.get("id") != bookmark_id]
            removed = len(filtered) != len(bookmarks)
            state["bookmarks"] = filtered
            return removed

        self.queue.drain()
        self._update_state(path, _apply)
        return removed

    def shutdown(self) -> None:
        self.queue.shutdown()


__all__ = [
    "DOCUMENT_SUFFIX",
    "DocumentNotFoundError",
    "DocumentStore",
    "STATE_SUFFIX",
    "STATE_VERSION",
    "WriteQueue",
    "is_document_file",
    "load_state_file",
    "save_state_file",
    "state_path_for",
]
