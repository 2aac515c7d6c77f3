from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from journalsync.core.config import AppConfig, load_config
from journalsync.core.errors import (
    AuthError,
    ConflictError,
    DecodeError,
    IndexStoreError,
    InvalidRepositoryIdentifierError,
    JournalSyncError,
    NetworkError,
    NotConfiguredError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from journalsync.index.crawler import RepositoryCrawler, rebuild_index
from journalsync.index.store import SqliteIndexStore
from journalsync.providers.github import GitHubClient
from journalsync.sync.journal import JournalService
from journalsync.sync.session import EditSession

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

REBUILD_LOCK = threading.Lock()

STATUS_BY_ERROR: list[tuple[type[JournalSyncError], int]] = [
    (NotConfiguredError, 412),
    (InvalidRepositoryIdentifierError, 412),
    (AuthError, 401),
    (RateLimitedError, 429),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 422),
    (NetworkError, 504),
    (DecodeError, 502),
    (IndexStoreError, 500),
]


class AppendRequest(BaseModel):
    text: str


class PutDocumentRequest(BaseModel):
    path: str
    content: str
    sha: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(e: JournalSyncError) -> JSONResponse:
    status = 502
    for kind, code in STATUS_BY_ERROR:
        if isinstance(e, kind):
            status = code
            break
    return JSONResponse(status_code=status, content=e.to_payload())


def _client(cfg: AppConfig) -> GitHubClient:
    return GitHubClient(cfg.github)


@router.get("/healthz")
def healthz():
    return {
        "ok": True,
        "status": "alive",
        "checked_at": _now_iso(),
    }


@router.get("/journal")
def get_journal():
    cfg = load_config()
    try:
        doc = JournalService(cfg.github, _client(cfg)).load_today()
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, **doc.model_dump()}


@router.post("/journal/entries")
def append_journal(payload: AppendRequest):
    if not payload.text.strip():
        raise HTTPException(status_code=400, detail="entry_empty")
    cfg = load_config()
    try:
        doc = JournalService(cfg.github, _client(cfg)).append(payload.text)
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, **doc.model_dump()}


@router.get("/documents")
def get_document(path: str):
    cfg = load_config()
    try:
        doc = _client(cfg).fetch_document(path)
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, **doc.model_dump()}


@router.put("/documents")
def put_document(payload: PutDocumentRequest):
    """Save with the caller's sha; a conflict answers 409 with the remote revision.

    Clients resolve by resending either the remote content (accept remote)
    or their own content with `remote_sha` (keep mine).
    """
    cfg = load_config()
    session = EditSession(_client(cfg), payload.path, content=payload.content, sha=payload.sha)
    try:
        new_sha = session.save()
    except ConflictError as e:
        body = e.to_payload()
        body["local_content"] = payload.content
        body["remote_content"] = session.conflict.remote_content if session.conflict else None
        body["remote_sha"] = session.conflict.remote_sha if session.conflict else None
        return JSONResponse(status_code=409, content=body)
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, "path": payload.path, "sha": new_sha}


@router.get("/tree")
def tree(path: str = ""):
    cfg = load_config()
    try:
        entries = _client(cfg).list_directory(path)
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, "path": path, "items": [e.model_dump(mode="json") for e in entries]}


@router.get("/search")
def search(q: str = ""):
    cfg = load_config()
    try:
        entries = _client(cfg).search(q)
    except JournalSyncError as e:
        return _error_response(e)
    return {"ok": True, "query": q, "items": [e.model_dump(mode="json") for e in entries]}


@router.post("/index/rebuild")
def index_rebuild():
    if not REBUILD_LOCK.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="rebuild_busy")
    try:
        cfg = load_config()
        client = _client(cfg)
        crawler = RepositoryCrawler(
            client,
            eligible_suffixes=cfg.crawl.eligible_suffixes,
            max_concurrency=cfg.crawl.max_concurrency,
            domain=cfg.crawl.domain,
        )
        store = SqliteIndexStore(cfg.index.path, cfg.crawl.domain)
        try:
            result = rebuild_index(crawler, store)
        except JournalSyncError as e:
            logger.warning("index_rebuild_failed code=%s", e.code)
            return _error_response(e)
    finally:
        REBUILD_LOCK.release()
    return {
        "ok": result.ok,
        "indexed_count": result.indexed_count,
        "errors": result.errors,
    }


@router.get("/index/status")
def index_status():
    cfg = load_config()
    store = SqliteIndexStore(cfg.index.path, cfg.crawl.domain)
    return {
        "ok": True,
        "count": store.count(),
        "last_run": store.last_run(),
    }
