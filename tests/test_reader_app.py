from __future__ import annotations

import asyncio
import json

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from lectern.config import ReaderConfig
from lectern.reader import INDEX_HTML, create_reader_app

BOOK = "".join(f"Line {index} of the book.\n" for index in range(100))


def _find_route(app, path: str, method: str):
    method = method.upper()
    for route in app.router.routes:
        if getattr(route, "path", None) == path and method in getattr(route, "methods", set()):
            return route.endpoint
    raise RuntimeError(f"Route {method} {path} not found")


def _session_route(app, action: str, method: str = "POST"):
    return _find_route(app, f"/api/documents/{{document_id:path}}/{action}", method)


def _create_app(tmp_path):
    library = tmp_path / "library"
    library.mkdir()
    (library / "book.txt").write_text(BOOK, encoding="utf-8")
    (library / "shelf").mkdir()
    (library / "shelf" / "short.txt").write_text("Tiny story.", encoding="utf-8")
    config = ReaderConfig(root=library, jump_delay=0.001, save_delay=0.01)
    return library, create_reader_app(config)


def _body(response) -> dict:
    return json.loads(response.body)


def test_index_serves_client(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    response = _find_route(app, "/", "GET")()
    assert response.body.decode("utf-8") == INDEX_HTML
    assert "/api/documents" in INDEX_HTML


def test_documents_listing_and_chunk_payload(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    listing = _body(_find_route(app, "/api/documents", "GET")(sort="title"))
    assert [entry["id"] for entry in listing["documents"]] == ["book.txt", "shelf/short.txt"]
    with pytest.raises(HTTPException) as excinfo:
        _find_route(app, "/api/documents", "GET")(sort="size")
    assert excinfo.value.status_code == 400

    document_route = _find_route(app, "/api/documents/{document_id:path}", "GET")
    payload = _body(document_route("shelf/short.txt"))
    assert payload["id"] == "shelf/short.txt"
    assert payload["chunks"][0]["text"] == "Tiny story."
    assert payload["progress"] is None
    with pytest.raises(HTTPException) as excinfo:
        document_route("../outside.txt")
    assert excinfo.value.status_code == 404


def test_document_route_is_registered_after_session_routes(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    paths = [getattr(route, "path", None) for route in app.router.routes]
    catch_all = paths.index("/api/documents/{document_id:path}")
    assert catch_all > paths.index("/api/documents/{document_id:path}/window")
    assert catch_all > paths.index("/api/documents/{document_id:path}/bookmarks")


def test_reading_session_flow(tmp_path) -> None:
    library, app = _create_app(tmp_path)
    open_route = _session_route(app, "open")
    scroll_route = _session_route(app, "scroll")
    click_route = _session_route(app, "click")
    bookmark_route = _session_route(app, "bookmarks")
    jump_route = _session_route(app, "jump")
    measure_route = _session_route(app, "measure")

    async def scenario():
        opened = _body(await open_route("book.txt", {"client_height": 400}))
        scrolled = _body(
            await scroll_route("book.txt", {"scroll_top": 1000, "client_height": 400})
        )
        measured = _body(await measure_route("book.txt", {"heights": {"0": 80}}))
        clicked = _body(
            await click_route("book.txt", {"token_index": 0, "top": 120, "left": 40})
        )
        bookmarked = _body(await bookmark_route("book.txt", {}))
        target = app.state.sessions["book.txt"].document.chunks[80].global_start_index
        jumped = _body(await jump_route("book.txt", {"target_char_index": target}))
        await asyncio.sleep(0.05)
        return opened, scrolled, measured, clicked, bookmarked, jumped

    opened, scrolled, measured, clicked, bookmarked, jumped = asyncio.run(scenario())
    assert opened["document_id"] == "book.txt"
    assert opened["total_size"] == 5000
    assert opened["items"][0]["html"].startswith('<div class="reading-paragraph"')
    assert scrolled["scroll_offset"] == 1000
    assert scrolled["progress"]["percent"] == 22
    assert measured["adjustment"] == 30
    assert measured["scroll_offset"] == 1030
    assert clicked["selection"]["text"] == "Line"
    assert clicked["selection"]["anchor"] == {"top": 70.0, "left": 40.0}
    assert clicked["selection"]["context"] == "[Line] 0 of the book. Line 1 of ..."
    assert bookmarked["bookmark"]["start_index"] == 0
    assert bookmarked["bookmark"]["text_preview"] == "Line"
    assert jumped["location"]["chunk_index"] == 80
    assert jumped["location"]["token"] == "Line"

    listing = _body(_session_route(app, "bookmarks", "GET")("book.txt"))
    assert [entry["start_index"] for entry in listing["bookmarks"]] == [0]
    app.state.store.queue.drain(timeout=5)
    state = json.loads((library / "book.txt.reading.json").read_text(encoding="utf-8"))
    assert state["progress"]["scroll_top"] > 0
    app.state.store.shutdown()


def test_reopen_resumes_saved_offset(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    app.state.store.save_progress(
        "book.txt", {"scroll_top": 2400, "percent": 52, "timestamp": 50.0}
    )
    app.state.store.queue.drain(timeout=5)

    async def scenario():
        return _body(await _session_route(app, "open")("book.txt", {"client_height": 400}))

    payload = asyncio.run(scenario())
    assert payload["scroll_offset"] == 2400
    assert payload["items"][0]["index"] == 43
    app.state.store.shutdown()


def test_explicit_bookmarks_and_delete(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    add_route = _session_route(app, "bookmarks")
    delete_route = _find_route(
        app, "/api/documents/{document_id:path}/bookmarks/{bookmark_id}", "DELETE"
    )

    async def scenario():
        return _body(
            await add_route("book.txt", {"start_index": 40, "text_preview": "x" * 80})
        )

    created = asyncio.run(scenario())["bookmark"]
    assert created["text_preview"] == "x" * 50 + "..."
    remaining = _body(delete_route("book.txt", created["id"]))
    assert remaining["bookmarks"] == []
    with pytest.raises(HTTPException) as excinfo:
        delete_route("book.txt", created["id"])
    assert excinfo.value.status_code == 404

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(add_route("book.txt", {}))
    assert excinfo.value.status_code == 400
    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(add_route("book.txt", {"start_index": -3}))
    assert excinfo.value.status_code == 400
    app.state.store.shutdown()


def test_session_routes_validate_input(tmp_path) -> None:
    _, app = _create_app(tmp_path)

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(_session_route(app, "scroll")("book.txt", {"scroll_top": 10}))
    assert excinfo.value.status_code == 409
    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(_session_route(app, "open")("missing.txt", {}))
    assert excinfo.value.status_code == 404

    asyncio.run(_session_route(app, "open")("book.txt", {}))
    bad_requests = [
        ("scroll", {"scroll_top": "far"}),
        ("scroll", {"scroll_top": -5}),
        ("measure", {"heights": [1, 2]}),
        ("measure", {"heights": {"x": 10}}),
        ("font-size", {"font_size": 0}),
        ("click", {"token_index": "3"}),
        ("mode", {"mode": "paragraph"}),
        ("jump", {"target_char_index": 1.5}),
    ]
    for action, payload in bad_requests:
        with pytest.raises(HTTPException) as excinfo:
            asyncio.run(_session_route(app, action)("book.txt", payload))
        assert excinfo.value.status_code == 400, action
    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(
            _session_route(app, "annotations", "PUT")("book.txt", {"entries": "word"})
        )
    assert excinfo.value.status_code == 400
    app.state.store.shutdown()


def test_mode_annotations_and_close(tmp_path) -> None:
    _, app = _create_app(tmp_path)

    async def scenario():
        await _session_route(app, "open")("book.txt", {"client_height": 300})
        mode = _body(await _session_route(app, "mode")("book.txt", {"mode": "phrase"}))
        annotated = _body(
            await _session_route(app, "annotations", "PUT")("book.txt", {"entries": ["book"]})
        )
        window = _body(await _session_route(app, "window", "GET")("book.txt"))
        closed = _body(await _session_route(app, "close")("book.txt"))
        return mode, annotated, window, closed

    mode, annotated, window, closed = asyncio.run(scenario())
    assert mode["mode"] == "phrase"
    assert annotated["highlighted"][:2] == [8, 18]
    assert 'class="underline"' in window["items"][0]["html"]
    assert closed == {"closed": True, "id": "book.txt"}
    assert "book.txt" not in app.state.sessions
    app.state.store.shutdown()


def test_changed_file_reloads_open_session(tmp_path) -> None:
    library, app = _create_app(tmp_path)

    async def scenario():
        app.state.loop = asyncio.get_running_loop()
        await _session_route(app, "open")("book.txt", {"client_height": 300})
        await _session_route(app, "scroll")("book.txt", {"scroll_top": 600})
        (library / "book.txt").write_text("Rewritten.\nShort now.\n", encoding="utf-8")
        app.state.reload_document(library / "book.txt")
        await asyncio.sleep(0.01)
        return app.state.sessions["book.txt"]

    view = asyncio.run(scenario())
    assert len(view.document.chunks) == 2
    assert view.window.scroll_offset == 600
    app.state.store.shutdown()


def test_lifespan_binds_loop_and_stops_writer(tmp_path) -> None:
    _, app = _create_app(tmp_path)
    assert app.state.loop is None
    with TestClient(app) as client:
        assert app.state.loop is not None
        listing = client.get("/api/documents", params={"sort": "title"})
        assert listing.status_code == 200
        opened = client.post("/api/documents/book.txt/open", json={"client_height": 300})
        assert opened.status_code == 200
        window = client.get("/api/documents/book.txt/window").json()
        assert window["document_id"] == "book.txt"
        assert client.get("/api/documents/book.txt").json()["id"] == "book.txt"
    with pytest.raises(RuntimeError):
        app.state.store.queue.executor.submit(lambda: None)
