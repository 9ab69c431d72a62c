import json
import urllib.request
from pathlib import Path

import pytest

from tablecase.cli.main import build_parser, main
from tablecase.infrastructure.remote import sync_client


def _fake_endpoint(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    urls: list[str] = []

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> bytes:
        urls.append(request.full_url)
        if "cursor=" not in request.full_url:
            page = {"rows": [{"id": "1", "name": "A,B"}], "webSafeResumeCursor": "a", "hasMoreResults": True}
        else:
            page = {"rows": [{"id": "2", "name": "C"}], "webSafeResumeCursor": None, "hasMoreResults": False}
        return json.dumps(page).encode("utf-8")

    monkeypatch.setattr(sync_client, "_urlopen", fake_urlopen)
    return urls


def test_export_command_writes_csv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TABLECASE_DOWNLOAD_DIR", raising=False)
    monkeypatch.delenv("TABLECASE_APP_ID", raising=False)
    urls = _fake_endpoint(monkeypatch)

    code = main(
        [
            "--project-root",
            str(tmp_path),
            "export",
            "--table-id",
            "census",
            "--server-url",
            "https://sync.example.org",
            "--anonymous",
            "--no-input",
        ]
    )

    assert code == 0
    assert len(urls) == 2
    out = tmp_path / "Download" / "default" / "census" / "data_unformatted.csv"
    assert out.read_text(encoding="utf-8").splitlines() == ["id,name", '1,"A,B"', "2,C"]


def test_export_command_reports_remote_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def failing_urlopen(request: urllib.request.Request, timeout: float) -> bytes:
        return b"<html>not json</html>"

    monkeypatch.setattr(sync_client, "_urlopen", failing_urlopen)

    code = main(
        [
            "--project-root",
            str(tmp_path),
            "export",
            "--table-id",
            "census",
            "--server-url",
            "https://sync.example.org",
            "--save-dir",
            str(tmp_path / "out"),
            "--no-input",
        ]
    )

    assert code == 1


def test_invalid_endpoint_exits_with_error(tmp_path: Path) -> None:
    code = main(["--project-root", str(tmp_path), "tables", "--server-url", "nope"])
    assert code == 1


def test_parser_registers_commands() -> None:
    parser = build_parser()
    args = parser.parse_args(["export", "--table-id", "t", "--column", "a", "--column", "b"])
    assert args.command == "export"
    assert args.column == ["a", "b"]
    assert parser.parse_args(["web", "--port", "9000"]).port == 9000


def test_tables_command_lists_remote_tables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[str] = []

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> bytes:
        seen.append(request.full_url)
        return b'{"tables": [{"tableId": "census"}]}'

    monkeypatch.setattr(sync_client, "_urlopen", fake_urlopen)

    code = main(["--project-root", str(tmp_path), "tables", "--server-url", "https://sync.example.org", "--anonymous"])

    assert code == 0
    assert seen[0].endswith("/tables")
