from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from journalsync.core.config import AppConfig
from journalsync.core.errors import AuthError, RateLimitedError
from journalsync.web import api as api_module

from conftest import FakeRepository


def _build_client() -> TestClient:
    app = FastAPI()
    app.include_router(api_module.router)
    return TestClient(app)


@pytest.fixture
def cfg(tmp_path: Path) -> AppConfig:
    cfg = AppConfig()
    cfg.github.token = "tok-123"
    cfg.github.repository = "alice/notes"
    cfg.index.path = str(tmp_path / "runtime" / "index.db")
    cfg.logging.file = str(tmp_path / "runtime" / "service.log")
    return cfg


@pytest.fixture
def wired(monkeypatch, cfg):
    repo = FakeRepository({"README.md": "# readme", "docs/a.md": "alpha", "docs/b.txt": "skip"})
    monkeypatch.setattr(api_module, "load_config", lambda: cfg)
    monkeypatch.setattr(api_module, "_client", lambda _cfg: repo)
    return repo


def test_healthz_returns_alive():
    resp = _build_client().get("/api/healthz")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["ok"] is True
    assert payload["status"] == "alive"
    assert "checked_at" in payload


def test_get_document_returns_sha(wired):
    resp = _build_client().get("/api/documents", params={"path": "docs/a.md"})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["content"] == "alpha"
    assert payload["sha"] == wired.sha_of("docs/a.md")


def test_missing_document_is_404(wired):
    resp = _build_client().get("/api/documents", params={"path": "nope.md"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_put_document_conflict_returns_remote_revision(wired):
    stale = wired.sha_of("docs/a.md")
    remote_sha = wired.remote_edit("docs/a.md", "alpha from phone")

    client = _build_client()
    resp = client.put("/api/documents", json={"path": "docs/a.md", "content": "alpha from laptop", "sha": stale})

    assert resp.status_code == 409
    payload = resp.json()
    assert payload["code"] == "conflict"
    assert payload["remote_content"] == "alpha from phone"
    assert payload["remote_sha"] == remote_sha
    assert payload["local_content"] == "alpha from laptop"

    # keep mine: resend with the fetched sha
    resp = client.put(
        "/api/documents",
        json={"path": "docs/a.md", "content": "alpha from laptop", "sha": payload["remote_sha"]},
    )
    assert resp.status_code == 200
    assert wired.files["docs/a.md"][0] == "alpha from laptop"


def test_auth_and_rate_limit_errors_are_mapped(wired):
    wired.list_errors[""] = AuthError("list /: authentication failed")
    wired.fetch_errors["docs/a.md"] = RateLimitedError("get docs/a.md: rate limited")
    client = _build_client()

    assert client.get("/api/tree").status_code == 401
    assert client.get("/api/documents", params={"path": "docs/a.md"}).status_code == 429


def test_journal_append_and_read(wired, cfg):
    client = _build_client()

    resp = client.post("/api/journal/entries", json={"text": "hello"})
    assert resp.status_code == 200
    path = resp.json()["path"]
    assert wired.files[path][0].endswith("\n- hello")

    resp = client.get("/api/journal")
    assert resp.status_code == 200
    assert resp.json()["exists"] is True


def test_journal_append_rejects_empty(wired):
    resp = _build_client().post("/api/journal/entries", json={"text": "   "})
    assert resp.status_code == 400


def test_index_rebuild_and_status(wired):
    client = _build_client()

    resp = client.post("/api/index/rebuild")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["ok"] is True
    assert payload["indexed_count"] == 2

    status = client.get("/api/index/status").json()
    assert status["count"] == 2
    assert status["last_run"]["status"] == "success"


def test_index_rebuild_busy(wired):
    api_module.REBUILD_LOCK.acquire()
    try:
        resp = _build_client().post("/api/index/rebuild")
    finally:
        api_module.REBUILD_LOCK.release()
    assert resp.status_code == 409
    assert resp.json()["detail"] == "rebuild_busy"
