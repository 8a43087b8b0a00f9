from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import requests

from punchgate.directory import DirectoryError, FileBranchDirectory, HttpBranchDirectory, parse_branches
from punchgate.models import Branch


def test_parse_branches_accepts_list_and_wrapped_object() -> None:
    raw = [
        {"id": "B1", "ip": "10.0.0.5"},
        {"id": 42, "address": "terminal-2.local", "port": 4371, "tenant_id": "acme"},
    ]

    assert parse_branches(raw, origin="test") == parse_branches({"branches": raw}, origin="test")
    assert parse_branches(raw, origin="test") == [
        Branch(id="B1", address="10.0.0.5", port=4370),
        Branch(id="42", address="terminal-2.local", port=4371, tenant_id="acme"),
    ]


def test_parse_branches_uses_default_port() -> None:
    (branch,) = parse_branches([{"id": "B1", "ip": "10.0.0.5"}], origin="test", default_port=5005)
    assert branch.port == 5005
    assert branch.tenant == "B1"


@pytest.mark.parametrize(
    "raw",
    [
        "not-a-list",
        [["B1", "10.0.0.5"]],
        [{"ip": "10.0.0.5"}],
        [{"id": "B1"}],
        [{"id": "B1", "ip": "10.0.0.5", "port": "abc"}],
        [{"id": "B1", "ip": "10.0.0.5", "port": 70000}],
        [{"id": "B1", "ip": "10.0.0.5"}, {"id": "B1", "ip": "10.0.0.6"}],
    ],
)
def test_parse_branches_rejects_malformed_entries(raw: Any) -> None:
    with pytest.raises(DirectoryError):
        parse_branches(raw, origin="test")


def test_file_directory_reads_yaml_and_rereads_on_change(tmp_path: Path) -> None:
    path = tmp_path / "branches.yaml"
    path.write_text("branches:\n  - id: B1\n    ip: 10.0.0.5\n", encoding="utf-8")
    directory = FileBranchDirectory(path)

    assert [b.id for b in directory.list_branches()] == ["B1"]

    path.write_text(json.dumps([{"id": "B1", "ip": "10.0.0.5"}, {"id": "B2", "ip": "10.0.0.6"}]), encoding="utf-8")
    assert [b.id for b in directory.list_branches()] == ["B1", "B2"]


def test_file_directory_errors(tmp_path: Path) -> None:
    with pytest.raises(DirectoryError):
        FileBranchDirectory(tmp_path / "missing.yaml").list_branches()

    broken = tmp_path / "broken.yaml"
    broken.write_text("branches: [\n", encoding="utf-8")
    with pytest.raises(DirectoryError):
        FileBranchDirectory(broken).list_branches()

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert FileBranchDirectory(empty).list_branches() == []


def test_file_directory_rejects_non_utf8_file(tmp_path: Path) -> None:
    path = tmp_path / "branches.yaml"
    path.write_bytes(b"branches:\n  - id: B\xff1\n    ip: 10.0.0.5\n")

    with pytest.raises(DirectoryError, match="cannot read branch file"):
        FileBranchDirectory(path).list_branches()


class _Session:
    def __init__(self, *, status_code: int = 200, payload: Any = None, error: Exception | None = None) -> None:
        self.status_code = status_code
        self.payload = payload
        self.error = error
        self.gets: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> SimpleNamespace:
        self.gets.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error

        def _json() -> Any:
            if isinstance(self.payload, Exception):
                raise self.payload
            return self.payload

        return SimpleNamespace(status_code=self.status_code, text="body", json=_json)


def test_http_directory_lists_branches() -> None:
    session = _Session(payload={"branches": [{"id": "B1", "ip": "10.0.0.5"}]})
    directory = HttpBranchDirectory("https://dir.example.test/branches", session=session, api_key="k", timeout_s=2.0)

    assert directory.list_branches() == [Branch(id="B1", address="10.0.0.5")]
    assert session.gets[0]["headers"]["X-API-Key"] == "k"
    assert session.gets[0]["timeout"] == 2.0


@pytest.mark.parametrize(
    "session",
    [
        _Session(status_code=503),
        _Session(error=requests.Timeout("read timed out")),
        _Session(payload=ValueError("not json")),
    ],
)
def test_http_directory_failures_raise_directory_error(session: _Session) -> None:
    with pytest.raises(DirectoryError):
        HttpBranchDirectory("https://dir.example.test/branches", session=session).list_branches()
