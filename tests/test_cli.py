from __future__ import annotations

import pytest

from lectern import cli


def _write_book(tmp_path):
    path = tmp_path / "book.txt"
    path.write_text("The quick fox\njumps over\n", encoding="utf-8")
    return path


def test_no_arguments_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "Virtualized plain-text reader" in capsys.readouterr().out


def test_unknown_command_exits() -> None:
    with pytest.raises(SystemExit):
        cli.main(["frobnicate"])


def test_chunks_prints_table(tmp_path, capsys) -> None:
    path = _write_book(tmp_path)
    assert cli.main(["chunks", str(path)]) == 0
    out = capsys.readouterr().out
    assert "chunk-0" in out
    assert "chunk-1" in out


def test_chunks_requires_existing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        cli.main(["chunks", str(tmp_path / "missing.txt")])


def test_resolve_prints_token(tmp_path, capsys) -> None:
    path = _write_book(tmp_path)
    assert cli.main(["resolve", str(path), "7"]) == 0
    assert capsys.readouterr().out.strip() == "'quick' token=2 chunk=0 chars=4-9"
    assert cli.main(["resolve", str(path), "500"]) == 1
    assert "outside the document" in capsys.readouterr().out


def test_list_shows_documents(tmp_path, capsys) -> None:
    _write_book(tmp_path)
    assert cli.main(["list", str(tmp_path)]) == 0
    assert "book.txt" in capsys.readouterr().out


def test_serve_builds_app_from_flags(tmp_path, monkeypatch, capsys) -> None:
    _write_book(tmp_path)
    config_path = tmp_path / "lectern.toml"
    config_path.write_text("[reader]\npage_height = 640\noverscan = 2\n", encoding="utf-8")
    captured: dict[str, object] = {}

    def fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "_resolve_local_ip", lambda host: "127.0.0.1")
    result = cli.main(
        [
            "serve",
            str(tmp_path),
            "--port",
            "9001",
            "--config",
            str(config_path),
            "--overscan",
            "3",
            "--no-watch",
        ]
    )
    assert result == 0
    app = captured["app"]
    try:
        assert app.state.config.overscan == 3
        assert app.state.config.page_height == 640.0
        assert captured["port"] == 9001
        formatter = captured["log_config"]["formatters"]["access"]["()"]
        assert formatter == "lectern.logging_utils.Utf8AccessFormatter"
        assert "http://127.0.0.1:9001/" in capsys.readouterr().out
    finally:
        app.state.store.shutdown()


def test_serve_requires_root(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        cli.main(["serve", str(tmp_path / "missing")])
