from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from dbquerylog.main import create_app
from dbquerylog.services.listener import QueryListener


@pytest.fixture
def client(settings_factory):
    app = create_app(settings_factory())
    with TestClient(app) as c:
        yield c


def _seed(disk_root, name: str, content: str) -> None:
    target = disk_root / "db-query-logger" / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["querylog"]["driver"] == "log_file"
    assert body["querylog"]["directory"] == "db-query-logger"
    assert "X-Request-ID" in r.headers


def test_lifespan_installs_listener(client, disk_root):
    listener = client.app.state.listener
    assert isinstance(listener, QueryListener)
    listener("select ?", [1], 0.2, "api")
    r = client.get("/api/v1/query-logs/files")
    assert r.status_code == 200
    assert r.json()["total_count"] == 1


def test_list_files(client, disk_root):
    _seed(disk_root, "2024-01-01.log", "a\n")
    _seed(disk_root, "2024-01-02.json", "[]")
    _seed(disk_root, "notes.txt", "x")
    r = client.get("/api/v1/query-logs/files")
    assert r.status_code == 200
    body = r.json()
    assert body["disk"] == "local"
    assert [f["name"] for f in body["files"]] == ["2024-01-01.log", "2024-01-02.json"]
    assert body["files"][0]["size_bytes"] == 2


def test_entries_pagination(client, disk_root):
    _seed(disk_root, "2024-01-01.log", "".join(f"line {i}\n" for i in range(5)))
    r = client.get(
        "/api/v1/query-logs/entries", params={"file": "2024-01-01.log", "limit": 2, "offset": 1}
    )
    assert r.status_code == 200
    body = r.json()
    assert body["format"] == "log"
    assert [e["content"] for e in body["entries"]] == ["line 1", "line 2"]
    assert body["total_count"] == 5 and body["has_more"] is True

    r = client.get(
        "/api/v1/query-logs/entries", params={"file": "2024-01-01.log", "reverse": True, "limit": 1}
    )
    assert r.json()["entries"] == [{"index": 4, "content": "line 4"}]


def test_entries_json_file(client, disk_root):
    _seed(disk_root, "2024-01-02.json", json.dumps([{"sql": "select 1"}]))
    r = client.get("/api/v1/query-logs/entries", params={"file": "2024-01-02.json"})
    assert r.status_code == 200
    assert r.json()["entries"][0]["content"] == {"sql": "select 1"}


@pytest.mark.parametrize(
    "name,status",
    [
        ("../secret.log", 400),
        ("notes.txt", 400),
        ("missing.log", 404),
        ("broken.json", 422),
    ],
)
def test_entries_errors(client, disk_root, name, status):
    _seed(disk_root, "broken.json", "{nope")
    r = client.get("/api/v1/query-logs/entries", params={"file": name})
    assert r.status_code == status
