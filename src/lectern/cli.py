from __future__ import annotations

import argparse
import socket
import sys
import tomllib
from importlib import metadata
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.table import Table

from .chunking import chunk_summary, chunk_text_for_virtualization
from .config import load_reader_config
from .library import SORT_MODES, list_documents
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .reader import create_reader_app
from .resolver import resolve_char_index
from .store import DocumentStore
from .watch import start_document_watch


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("lectern")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"lectern {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lectern",
        description="Virtualized plain-text reader.",
        epilog="Subcommands: serve, list, chunks, resolve.",
    )
    _add_version_flag(ap)
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lectern serve",
        description="Serve a directory of .txt documents in the browser reader.",
    )
    _add_version_flag(ap)
    ap.add_argument("root", help="Directory containing .txt documents.")
    ap.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host interface for the web server (default: 0.0.0.0).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument(
        "--config",
        help="TOML file with a [reader] table of reader settings.",
    )
    ap.add_argument(
        "--estimate-size",
        type=float,
        default=None,
        help="Estimated chunk height in pixels before measurement (default: 50).",
    )
    ap.add_argument(
        "--overscan",
        type=int,
        default=None,
        help="Chunks rendered beyond each edge of the viewport (default: 5).",
    )
    ap.add_argument(
        "--page-height",
        type=float,
        default=None,
        help="Pixels per page for the pages-left estimate (default: 800).",
    )
    ap.add_argument(
        "--save-delay",
        type=float,
        default=None,
        help="Seconds of scroll inactivity before progress is saved (default: 1.0).",
    )
    ap.add_argument(
        "--no-watch",
        action="store_true",
        help="Do not reload open documents when their files change.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Print reader debug logs to stderr.",
    )
    return ap


def build_list_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lectern list",
        description="List documents with their reading progress.",
    )
    _add_version_flag(ap)
    ap.add_argument("root", help="Directory containing .txt documents.")
    ap.add_argument(
        "--sort",
        choices=SORT_MODES,
        default="title",
        help="Sort order (default: title).",
    )
    return ap


def build_chunks_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lectern chunks",
        description="Show how a document is split into render chunks.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Plain-text file to chunk.")
    ap.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only show the first N chunks.",
    )
    return ap


def build_resolve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="lectern resolve",
        description="Resolve a character offset to the token that contains it.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Plain-text file.")
    ap.add_argument("offset", type=int, help="Absolute character offset.")
    return ap


def _read_input(path_value: str) -> str:
    path = Path(path_value).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_serve(args: argparse.Namespace) -> int:
    set_debug_logging(args.debug)
    root = Path(args.root).expanduser().resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Document root not found: {root}")
    config_path = Path(args.config).expanduser() if args.config else None
    config = load_reader_config(
        root,
        config_path,
        overrides={
            "estimate_size": args.estimate_size,
            "overscan": args.overscan,
            "page_height": args.page_height,
            "save_delay": args.save_delay,
        },
    )
    app = create_reader_app(config)
    observer = None
    if not args.no_watch:
        observer = start_document_watch(root, app.state.reload_document)

    public_ip = _resolve_local_ip(args.host)
    url = f"http://{public_ip}:{args.port}/"
    print(f"Serving lectern from {root}")
    print(f"Web URL: {url}")
    print("Press Ctrl+C to stop.\n")
    try:
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_config=build_uvicorn_log_config(debug=args.debug),
        )
    finally:
        if observer is not None:
            observer.stop()
            observer.join(timeout=2.0)
    return 0


def _run_list(args: argparse.Namespace) -> int:
    root = Path(args.root).expanduser().resolve()
    store = DocumentStore(root)
    try:
        listings = list_documents(store.root, mode=args.sort)
    finally:
        store.shutdown()
    console = Console()
    if not listings:
        console.print(f"No .txt documents found under {root}")
        return 0
    table = Table(title=str(root))
    table.add_column("Document")
    table.add_column("Size", justify="right")
    table.add_column("Read", justify="right")
    for listing in listings:
        table.add_row(listing.document_id, str(listing.size), f"{listing.percent}%")
    console.print(table)
    return 0


def _run_chunks(args: argparse.Namespace) -> int:
    text = _read_input(args.input_path)
    document = chunk_text_for_virtualization(text, document_id=args.input_path)
    rows = chunk_summary(document)
    if args.limit is not None:
        if args.limit < 0:
            raise SystemExit("--limit must be non-negative.")
        rows = rows[: args.limit]
    table = Table(
        title=f"{args.input_path}: {len(document.chunks)} chunks, {len(document.tokens)} tokens",
    )
    table.add_column("Chunk")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Text")
    for chunk_id, start, end, token_count, preview in rows:
        table.add_row(chunk_id, str(start), str(end), str(token_count), preview)
    Console().print(table)
    return 0


def _run_resolve(args: argparse.Namespace) -> int:
    text = _read_input(args.input_path)
    document = chunk_text_for_virtualization(text, document_id=args.input_path)
    location = resolve_char_index(document, args.offset)
    if location is None:
        print(f"Offset {args.offset} is outside the document (length {document.length}).")
        return 1
    print(
        f"{location.token!r} token={location.token_index} chunk={location.chunk_index} "
        f"chars={location.char_start}-{location.char_end}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "serve":
        serve_args = build_serve_parser().parse_args(argv[1:])
        return _run_serve(serve_args)
    if argv and argv[0] == "list":
        list_args = build_list_parser().parse_args(argv[1:])
        return _run_list(list_args)
    if argv and argv[0] == "chunks":
        chunks_args = build_chunks_parser().parse_args(argv[1:])
        return _run_chunks(chunks_args)
    if argv and argv[0] == "resolve":
        resolve_args = build_resolve_parser().parse_args(argv[1:])
        return _run_resolve(resolve_args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    raise SystemExit(f"Unknown command: {argv[0]}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
