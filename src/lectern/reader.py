from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Mapping

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse

from .chunking import chunk_text_for_virtualization, serialize_chunks
from .config import ReaderConfig
from .library import SORT_MODES, list_documents, listing_payload
from .logging_utils import debug_log
from .selection import SELECTION_MODES, bookmark_preview
from .store import DocumentNotFoundError, DocumentStore
from .view import ReaderView

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>lectern</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    :root {
      color-scheme: dark;
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
      --bg: #05060b;
      --panel: #111423;
      --outline: #1f243d;
      --text: #f3f4f6;
      --muted: #a3a8c5;
      --accent: #38bdf8;
      --range: rgba(56,189,248,0.25);
      --target: rgba(250,204,21,0.45);
    }
    * { box-sizing: border-box; }
    body { margin: 0; background: var(--bg); color: var(--text); }
    header {
      position: fixed; top: 0; left: 0; right: 0; z-index: 10;
      display: flex; gap: 0.5rem; align-items: center;
      padding: 0.6rem 1rem; background: var(--panel);
      border-bottom: 1px solid var(--outline);
      transition: transform 0.2s ease;
    }
    header.hidden { transform: translateY(-100%); }
    header select, header button {
      background: transparent; color: var(--text);
      border: 1px solid var(--outline); border-radius: 10px; padding: 0.3rem 0.7rem;
    }
    header button.active { border-color: var(--accent); color: var(--accent); }
    #scroller { position: fixed; inset: 0; overflow-y: auto; padding-top: 3.2rem; }
    #canvas { position: relative; width: min(46rem, 100%); margin: 0 auto; }
    .row { position: absolute; left: 0; width: 100%; padding: 0 1rem; }
    .reading-paragraph { white-space: pre-wrap; line-height: 1.7; min-height: 1em; position: relative; }
    .token { border-radius: 3px; cursor: pointer; }
    .token.cursor-alias { cursor: alias; }
    .token:hover { background: rgba(255,255,255,0.08); }
    .token.range { background: var(--range); }
    .token.anchor { outline: 2px solid var(--accent); }
    .token.target { background: var(--target); outline: 2px solid #facc15; }
    .underline { border-bottom: 2px dotted var(--accent); }
    .bookmark-marker { position: absolute; left: -1.2rem; top: 0.3rem; width: 0.6rem; height: 0.9rem; background: #fcd34d; }
    #toolbar {
      position: fixed; z-index: 20; transform: translateX(-50%);
      background: var(--panel); border: 1px solid var(--outline); border-radius: 10px; padding: 0.3rem;
    }
    #toolbar button { background: transparent; color: var(--text); border: 0; padding: 0.3rem 0.6rem; cursor: pointer; }
    footer {
      position: fixed; bottom: 0; left: 0; right: 0; padding: 0.4rem 1rem;
      font-size: 0.8rem; color: var(--muted); background: var(--panel);
      display: none;
    }
    footer.visible { display: block; }
    .hidden { display: none !important; }
  </style>
</head>
<body>
  <header id="header">
    <select id="documents"></select>
    <button id="phrase" type="button" title="Select multiple words">Phrase</button>
    <button id="smaller" type="button">A-</button>
    <button id="larger" type="button">A+</button>
    <select id="bookmarks"><option value="">Bookmarks</option></select>
  </header>
  <div id="scroller"><div id="canvas"></div></div>
  <div id="toolbar" class="hidden">
    <button id="bookmark-selection" type="button">Bookmark</button>
  </div>
  <footer id="footer"></footer>
  <script>
    const state = { doc: null, fontSize: 1, pending: false, mode: 'single' };
    const scroller = document.getElementById('scroller');
    const canvas = document.getElementById('canvas');
    const toolbar = document.getElementById('toolbar');
    const docPath = () => encodeURIComponent(state.doc).replace(/%2F/g, '/');

    async function api(path, method = 'GET', body = undefined) {
      const init = { method, headers: {} };
      if (body !== undefined) {
        init.headers['Content-Type'] = 'application/json';
        init.body = JSON.stringify(body);
      }
      const res = await fetch(path, init);
      if (!res.ok) {
        throw new Error(await res.text());
      }
      return res.json();
    }

    function renderWindow(payload) {
      canvas.style.height = `${payload.total_size}px`;
      canvas.style.fontSize = `${payload.font_size}rem`;
      canvas.innerHTML = '';
      for (const item of payload.items) {
        const row = document.createElement('div');
        row.className = 'row';
        row.dataset.index = item.index;
        row.style.transform = `translateY(${item.start}px)`;
        row.innerHTML = item.html;
        canvas.appendChild(row);
      }
      if (payload.progress) {
        document.getElementById('header').classList.toggle('hidden', !payload.progress.header_visible);
        const footer = document.getElementById('footer');
        footer.classList.toggle('visible', !payload.progress.header_visible);
        const pages = payload.progress.pages_left;
        footer.textContent = `${pages} ${pages === 1 ? 'page' : 'pages'} left · ${payload.progress.percent}%`;
      }
      if (!payload.selection) {
        toolbar.classList.add('hidden');
      }
      measureRows();
    }

    async function measureRows() {
      const heights = {};
      for (const row of canvas.querySelectorAll('.row')) {
        heights[row.dataset.index] = row.firstElementChild.offsetHeight;
      }
      const payload = await api(`/api/documents/${docPath()}/measure`, 'POST', { heights });
      if (payload.adjustment) {
        scroller.scrollTop = payload.scroll_offset;
      }
      canvas.style.height = `${payload.total_size}px`;
      for (const item of payload.items) {
        const row = canvas.querySelector(`.row[data-index="${item.index}"]`);
        if (row) row.style.transform = `translateY(${item.start}px)`;
      }
    }

    scroller.addEventListener('scroll', () => {
      if (state.pending || !state.doc) return;
      state.pending = true;
      requestAnimationFrame(async () => {
        state.pending = false;
        const payload = await api(`/api/documents/${docPath()}/scroll`, 'POST', {
          scroll_top: scroller.scrollTop,
          client_height: scroller.clientHeight,
        });
        renderWindow(payload);
      });
    });

    canvas.addEventListener('click', async (event) => {
      const span = event.target.closest('[data-index].token');
      if (!span) return;
      const rect = span.getBoundingClientRect();
      const payload = await api(`/api/documents/${docPath()}/click`, 'POST', {
        token_index: Number(span.dataset.index),
        top: rect.top,
        left: rect.left + rect.width / 2,
      });
      renderWindow(payload);
      if (payload.selection && payload.selection.anchor) {
        toolbar.style.top = `${payload.selection.anchor.top}px`;
        toolbar.style.left = `${payload.selection.anchor.left}px`;
        toolbar.classList.remove('hidden');
      }
    });

    document.getElementById('bookmark-selection').addEventListener('click', async () => {
      await api(`/api/documents/${docPath()}/bookmarks`, 'POST', {});
      toolbar.classList.add('hidden');
      await loadBookmarks();
    });

    document.getElementById('phrase').addEventListener('click', async (event) => {
      state.mode = state.mode === 'phrase' ? 'single' : 'phrase';
      event.currentTarget.classList.toggle('active', state.mode === 'phrase');
      renderWindow(await api(`/api/documents/${docPath()}/mode`, 'POST', { mode: state.mode }));
    });

    async function changeFont(step) {
      state.fontSize = Math.max(0.6, Math.min(2.4, state.fontSize + step));
      renderWindow(await api(`/api/documents/${docPath()}/font-size`, 'POST', { font_size: state.fontSize }));
    }
    document.getElementById('smaller').addEventListener('click', () => changeFont(-0.1));
    document.getElementById('larger').addEventListener('click', () => changeFont(0.1));

    async function jumpTo(charIndex) {
      const payload = await api(`/api/documents/${docPath()}/jump`, 'POST', { target_char_index: charIndex });
      if (!payload.location) return;
      scroller.scrollTop = payload.scroll_offset;
      renderWindow(payload);
      const element = document.getElementById(`word-${payload.location.token_index}`);
      if (element) element.scrollIntoView({ behavior: 'smooth', block: 'center' });
    }

    async function loadBookmarks() {
      const select = document.getElementById('bookmarks');
      const data = await api(`/api/documents/${docPath()}/bookmarks`);
      select.innerHTML = '<option value="">Bookmarks</option>';
      for (const entry of data.bookmarks) {
        const option = document.createElement('option');
        option.value = entry.start_index;
        option.textContent = entry.text_preview || `#${entry.start_index}`;
        select.appendChild(option);
      }
    }
    document.getElementById('bookmarks').addEventListener('change', (event) => {
      if (event.target.value !== '') jumpTo(Number(event.target.value));
      event.target.value = '';
    });

    async function openDocument(id) {
      state.doc = id;
      const payload = await api(`/api/documents/${docPath()}/open`, 'POST', {
        client_height: scroller.clientHeight,
        font_size: state.fontSize,
      });
      renderWindow(payload);
      scroller.scrollTop = payload.scroll_offset;
      await loadBookmarks();
    }

    async function init() {
      const data = await api('/api/documents?sort=read');
      const select = document.getElementById('documents');
      for (const entry of data.documents) {
        const option = document.createElement('option');
        option.value = entry.id;
        option.textContent = `${entry.title} (${entry.percent}%)`;
        select.appendChild(option);
      }
      select.addEventListener('change', () => openDocument(select.value));
      if (data.documents.length) openDocument(data.documents[0].id);
    }
    init().catch((err) => console.error(err));
  </script>
</body>
</html>
"""


def _number(
    payload: Mapping[str, object],
    key: str,
    *,
    required: bool = True,
    minimum: float | None = 0,
) -> float | None:
    value = payload.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise HTTPException(status_code=400, detail=f"{key} must be a number.")
    if minimum is not None and value < minimum:
        raise HTTPException(status_code=400, detail=f"{key} must be at least {minimum}.")
    return float(value)


def _integer(payload: Mapping[str, object], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPException(status_code=400, detail=f"{key} must be an integer.")
    return value


def create_reader_app(config: ReaderConfig, *, store: DocumentStore | None = None) -> FastAPI:
    store = store or DocumentStore(config.root)
    sessions: dict[str, ReaderView] = {}

    def _shutdown() -> None:
        for view in sessions.values():
            view.close()
        store.shutdown()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.loop = asyncio.get_running_loop()
        try:
            yield
        finally:
            _shutdown()

    app = FastAPI(title="lectern Reader", lifespan=_lifespan)
    app.state.config = config
    app.state.root = store.root
    app.state.store = store
    app.state.loop = None
    app.state.sessions = sessions

    def _canonical_id(document_id: str) -> str:
        try:
            path = store.resolve_document(document_id)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Document not found.") from exc
        return store.document_id_for(path)

    def _session(document_id: str) -> tuple[str, ReaderView]:
        canonical = _canonical_id(document_id)
        view = sessions.get(canonical)
        if view is None:
            raise HTTPException(status_code=409, detail="Document is not open.")
        return canonical, view

    def _reload(document_id: str) -> None:
        view = sessions.get(document_id)
        if view is None:
            return
        try:
            text = store.read_text(document_id)
            bookmarks = store.list_bookmarks(document_id)
        except (DocumentNotFoundError, OSError) as exc:
            debug_log(f"reload skipped for {document_id}: {exc}")
            return
        view.load(
            document_id,
            text,
            initial_offset=view.window.scroll_offset,
            bookmarks=bookmarks,
        )

    def reload_document(path: Path) -> None:
        """Re-chunk an open document after its file changed; thread safe."""
        try:
            document_id = store.document_id_for(path)
        except ValueError:
            return
        loop = app.state.loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(_reload, document_id)

    app.state.reload_document = reload_document

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML)

    @app.get("/api/documents")
    def api_documents(
        sort: str | None = Query(None, description="Sort order: title, recent, or read"),
    ) -> JSONResponse:
        if sort and sort.strip().lower() not in SORT_MODES:
            raise HTTPException(status_code=400, detail="Invalid sort mode.")
        listings = list_documents(store.root, mode=sort or "title")
        return JSONResponse({"documents": [listing_payload(entry) for entry in listings]})

    @app.post("/api/documents/{document_id:path}/open")
    async def api_open(
        document_id: str,
        payload: dict[str, object] = Body(default_factory=dict),
    ) -> JSONResponse:
        canonical = _canonical_id(document_id)
        client_height = _number(payload, "client_height", required=False)
        font_size = _number(payload, "font_size", required=False)
        text = store.read_text(canonical)
        progress = store.load_progress(canonical) or {}
        initial_offset = progress.get("scroll_top")
        view = sessions.get(canonical)
        if view is None:
            view = ReaderView(config, store=store)
            sessions[canonical] = view
        if client_height is not None:
            view.set_viewport(client_height)
        if font_size:
            view.set_font_size(font_size)
        view.load(
            canonical,
            text,
            initial_offset=float(initial_offset) if isinstance(initial_offset, (int, float)) else 0.0,
            bookmarks=store.list_bookmarks(canonical),
        )
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/close")
    async def api_close(document_id: str) -> JSONResponse:
        canonical, view = _session(document_id)
        view.close()
        sessions.pop(canonical, None)
        return JSONResponse({"closed": True, "id": canonical})

    @app.get("/api/documents/{document_id:path}/window")
    async def api_window(document_id: str) -> JSONResponse:
        _, view = _session(document_id)
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/scroll")
    async def api_scroll(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        scroll_top = _number(payload, "scroll_top")
        client_height = _number(payload, "client_height", required=False)
        view.handle_scroll(scroll_top or 0.0, client_height)
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/measure")
    async def api_measure(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        heights_payload = payload.get("heights")
        if not isinstance(heights_payload, Mapping):
            raise HTTPException(status_code=400, detail="heights must be an object.")
        heights: dict[int, float] = {}
        for key, value in heights_payload.items():
            try:
                index = int(key)
            except (TypeError, ValueError) as exc:
                raise HTTPException(status_code=400, detail=f"Invalid chunk index: {key}") from exc
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise HTTPException(status_code=400, detail="Heights must be non-negative numbers.")
            heights[index] = float(value)
        adjustment = view.report_measurements(heights)
        return JSONResponse({"adjustment": adjustment, **view.window_payload()})

    @app.post("/api/documents/{document_id:path}/font-size")
    async def api_font_size(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        font_size = _number(payload, "font_size")
        if not font_size:
            raise HTTPException(status_code=400, detail="font_size must be positive.")
        view.set_font_size(font_size)
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/click")
    async def api_click(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        token_index = _integer(payload, "token_index")
        top = _number(payload, "top", required=False, minimum=None)
        left = _number(payload, "left", required=False, minimum=None)
        position = (top, left) if top is not None and left is not None else None
        view.click(token_index, position)
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/mode")
    async def api_mode(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        mode = payload.get("mode")
        if mode not in SELECTION_MODES:
            raise HTTPException(
                status_code=400,
                detail=f"mode must be one of: {', '.join(SELECTION_MODES)}.",
            )
        view.set_mode(str(mode))
        return JSONResponse(view.window_payload())

    @app.post("/api/documents/{document_id:path}/jump")
    async def api_jump(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        canonical, view = _session(document_id)
        target = _integer(payload, "target_char_index")
        location = await view.jump_to(canonical, target)
        return JSONResponse(
            {
                "location": location.to_payload() if location is not None else None,
                **view.window_payload(),
            }
        )

    @app.put("/api/documents/{document_id:path}/annotations")
    async def api_annotations(
        document_id: str,
        payload: dict[str, object] = Body(...),
    ) -> JSONResponse:
        _, view = _session(document_id)
        entries = payload.get("entries")
        if not isinstance(entries, list) or not all(isinstance(entry, str) for entry in entries):
            raise HTTPException(status_code=400, detail="entries must be a list of strings.")
        highlighted = view.set_annotations(entries)
        return JSONResponse({"highlighted": sorted(highlighted), **view.window_payload()})

    @app.get("/api/documents/{document_id:path}/bookmarks")
    def api_bookmarks(document_id: str) -> JSONResponse:
        canonical = _canonical_id(document_id)
        store.queue.drain(timeout=5.0)
        return JSONResponse({"bookmarks": store.list_bookmarks(canonical)})

    @app.post("/api/documents/{document_id:path}/bookmarks")
    async def api_add_bookmark(
        document_id: str,
        payload: dict[str, object] = Body(default_factory=dict),
    ) -> JSONResponse:
        canonical = _canonical_id(document_id)
        view = sessions.get(canonical)
        if "start_index" not in payload:
            if view is None:
                raise HTTPException(status_code=400, detail="start_index is required.")
            bookmark = view.add_bookmark_from_selection()
            if bookmark is None:
                raise HTTPException(status_code=400, detail="Nothing is selected.")
            return JSONResponse({"bookmark": bookmark})
        start_index = _integer(payload, "start_index")
        if start_index < 0:
            raise HTTPException(status_code=400, detail="start_index must be non-negative.")
        preview = payload.get("text_preview")
        if preview is not None and not isinstance(preview, str):
            raise HTTPException(status_code=400, detail="text_preview must be a string.")
        bookmark = store.save_bookmark(
            canonical,
            {"start_index": start_index, "text_preview": bookmark_preview(preview or "")},
        )
        if view is not None:
            view.bookmarks.append(dict(bookmark))
        return JSONResponse({"bookmark": bookmark})

    @app.delete("/api/documents/{document_id:path}/bookmarks/{bookmark_id}")
    def api_delete_bookmark(document_id: str, bookmark_id: str) -> JSONResponse:
        canonical = _canonical_id(document_id)
        if not bookmark_id:
            raise HTTPException(status_code=400, detail="bookmark_id is required.")
        removed = store.remove_bookmark(canonical, bookmark_id)
        if not removed:
            raise HTTPException(status_code=404, detail="Bookmark not found.")
        view = sessions.get(canonical)
        if view is not None:
            view.bookmarks = [entry for entry in view.bookmarks if entry.get("id") != bookmark_id]
        return JSONResponse({"bookmarks": store.list_bookmarks(canonical)})

    # Registered last: the path converter would otherwise swallow the
    # GET sub-routes above.
    @app.get("/api/documents/{document_id:path}")
    def api_document(
        document_id: str,
    ) -> JSONResponse:
        document_id = _canonical_id(document_id)
        text = store.read_text(document_id)
        document = chunk_text_for_virtualization(text, document_id=document_id)
        state = store.load_state(document_id)
        return JSONResponse(
            {
                "id": document_id,
                "length": document.length,
                "token_count": len(document.tokens),
                "chunks": serialize_chunks(document.chunks),
                "progress": state.get("progress"),
                "bookmarks": state.get("bookmarks"),
            }
        )

    return app


__all__ = ["INDEX_HTML", "create_reader_app"]
