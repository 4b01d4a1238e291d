from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .store import is_document_file, load_state_file, state_path_for

SORT_MODES = ("title", "recent", "read")


@dataclass(slots=True)
class DocumentListing:
    path: Path
    document_id: str
    title: str
    size: int
    modified: float
    last_read: float
    percent: int


def normalize_sort_mode(value: str | None) -> str:
    normalized = (value or "").lower().strip()
    if normalized not in SORT_MODES:
        return "title"
    return normalized


def list_documents(root: Path, mode: str = "title") -> list[DocumentListing]:
    normalized_mode = normalize_sort_mode(mode)
    entries: list[tuple[tuple[object, ...], DocumentListing]] = []
    for path in root.rglob("*.txt"):
        if not is_document_file(path):
            continue
        rel = path.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        try:
            stat = path.stat()
        except OSError:
            continue
        state = load_state_file(state_path_for(path))
        progress = state.get("progress")
        last_read = 0.0
        percent = 0
        if isinstance(progress, dict):
            timestamp = progress.get("timestamp")
            if isinstance(timestamp, (int, float)):
                last_read = float(timestamp)
            percent_value = progress.get("percent")
            if isinstance(percent_value, int):
                percent = percent_value
        listing = DocumentListing(
            path=path,
            document_id=rel.as_posix(),
            title=path.stem,
            size=stat.st_size,
            modified=stat.st_mtime,
            last_read=last_read,
            percent=percent,
        )
        title_key = listing.title.casefold()
        if normalized_mode == "recent":
            sort_key: tuple[object, ...] = (-listing.modified, title_key, listing.document_id)
        elif normalized_mode == "read":
            has_read = last_read > 0
            sort_key = (
                0 if has_read else 1,
                -last_read if has_read else 0,
                title_key,
                listing.document_id,
            )
        else:
            sort_key = (title_key, listing.document_id)
        entries.append((sort_key, listing))
    entries.sort(key=lambda item: item[0])
    return [listing for _, listing in entries]


def listing_payload(listing: DocumentListing) -> dict[str, object]:
    return {
        "id": listing.document_id,
        "title": listing.title,
        "size": listing.size,
        "modified": listing.modified,
        "last_read": listing.last_read or None,
        "percent": listing.percent,
    }


__all__ = [
    "DocumentListing",
    "SORT_MODES",
    "list_documents",
    "listing_payload",
    "normalize_sort_mode",
]
