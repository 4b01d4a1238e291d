from __future__ import annotations

import json
import os

from lectern.library import list_documents, listing_payload, normalize_sort_mode


def _write(path, text: str = "text\n") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_listing_skips_hidden_and_non_text(tmp_path) -> None:
    _write(tmp_path / "b.txt")
    _write(tmp_path / "shelf" / "a.txt")
    _write(tmp_path / ".trash" / "c.txt")
    _write(tmp_path / "notes.md")
    listings = list_documents(tmp_path)
    assert [entry.document_id for entry in listings] == ["shelf/a.txt", "b.txt"]


def test_read_sort_puts_recently_read_first(tmp_path) -> None:
    for name in ("alpha", "beta", "gamma"):
        _write(tmp_path / f"{name}.txt")
    for name, timestamp in (("alpha", 100.0), ("gamma", 200.0)):
        (tmp_path / f"{name}.txt.reading.json").write_text(
            json.dumps({"progress": {"scroll_top": 10, "percent": 25, "timestamp": timestamp}}),
            encoding="utf-8",
        )
    listings = list_documents(tmp_path, mode="read")
    assert [entry.title for entry in listings] == ["gamma", "alpha", "beta"]
    payload = listing_payload(listings[0])
    assert payload["percent"] == 25
    assert payload["last_read"] == 200.0
    assert listing_payload(listings[2])["last_read"] is None


def test_recent_sort_uses_modification_time(tmp_path) -> None:
    _write(tmp_path / "old.txt")
    _write(tmp_path / "new.txt")
    os.utime(tmp_path / "old.txt", (1000, 1000))
    os.utime(tmp_path / "new.txt", (2000, 2000))
    listings = list_documents(tmp_path, mode="recent")
    assert [entry.title for entry in listings] == ["new", "old"]


def test_unknown_sort_falls_back_to_title() -> None:
    assert normalize_sort_mode("READ ") == "read"
    assert normalize_sort_mode("size") == "title"
    assert normalize_sort_mode(None) == "title"
