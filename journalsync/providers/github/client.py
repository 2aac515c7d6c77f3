from __future__ import annotations

import base64
import binascii
import logging
from typing import Any
from urllib.parse import quote

import requests

from journalsync.core.config import GitHubConfig, require_configured
from journalsync.core.errors import (
    AuthError,
    ConflictError,
    DecodeError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    UnknownStatusError,
    ValidationError,
)
from journalsync.providers.github.models import Document, RepositoryEntry

logger = logging.getLogger(__name__)

ACCEPT = "application/vnd.github.v3+json"
SEARCH_LANGUAGE = "markdown"


class GitHubClient:
    """Get/put/list/search against the GitHub contents API.

    `http` is anything with a `requests`-compatible `request()` method; the
    module itself is used by default so calls stay safe to issue from worker
    threads.
    """

    def __init__(self, settings: GitHubConfig, http: Any = None):
        self.settings = settings
        self.timeout = int(settings.timeout_sec)
        self.http = http or requests

    # -- request plumbing -------------------------------------------------

    def _repo(self) -> tuple[str, str]:
        return require_configured(self.settings)

    def _contents_url(self, path: str) -> str:
        owner, repo = self._repo()
        rel = quote((path or "").strip("/"), safe="/")
        return f"{self.settings.api_base.rstrip('/')}/repos/{owner}/{repo}/contents/{rel}"

    def _headers(self, no_cache: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"token {self.settings.token}",
            "Accept": ACCEPT,
        }
        if no_cache:
            headers["Cache-Control"] = "no-cache"
        return headers

    def _send(self, method: str, url: str, **kwargs) -> Any:
        logger.debug("github_request method=%s url=%s", method, url)
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}", cause=e) from e

    def _json(self, res: Any) -> Any:
        try:
            return res.json()
        except ValueError as e:
            raise DecodeError(f"invalid_json_response: {e}") from e

    def _error_detail(self, res: Any) -> str:
        try:
            payload = res.json()
        except ValueError:
            return (getattr(res, "text", "") or "").strip()[:200]
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return ""

    def _raise_for_status(self, res: Any, op: str, path: str) -> None:
        status = res.status_code
        if status in (200, 201):
            return
        detail = self._error_detail(res)
        where = f"{op} {path or '/'}"
        if status == 401:
            raise AuthError(f"{where}: authentication failed {detail}".strip())
        if status == 403:
            raise RateLimitedError(f"{where}: rate limited {detail}".strip())
        if status == 404:
            raise NotFoundError(f"{where}: not found")
        if status == 409 and op == "put":
            raise ConflictError(f"{where}: remote version changed {detail}".strip())
        if status == 422:
            raise ValidationError(f"{where}: rejected {detail}".strip())
        raise UnknownStatusError(status, f"{where}: api_error_status_{status} {detail}".strip())

    # -- documents --------------------------------------------------------

    def fetch_document(self, path: str) -> Document:
        """Read `path`; a missing file raises `NotFoundError`."""
        res = self._send("GET", self._contents_url(path), headers=self._headers(no_cache=True))
        self._raise_for_status(res, "get", path)
        payload = self._json(res)
        if not isinstance(payload, dict):
            raise DecodeError(f"get {path}: expected a file object, got {type(payload).__name__}")

        raw = payload.get("content")
        sha = payload.get("sha")
        if not isinstance(raw, str) or not isinstance(sha, str) or not sha:
            raise DecodeError(f"get {path}: response lacks content/sha")
        encoding = payload.get("encoding") or "base64"
        if encoding != "base64":
            raise DecodeError(f"get {path}: unsupported encoding {encoding}")

        try:
            data = base64.b64decode(raw.replace("\n", ""), validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"get {path}: invalid base64 content: {e}") from e
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"get {path}: content is not valid UTF-8: {e}") from e

        return Document(path=path, content=text, sha=sha, exists=True)

    def get_document(self, path: str, default_content: str = "") -> Document:
        """Read `path`; a missing file yields `default_content` with `exists=False`."""
        try:
            return self.fetch_document(path)
        except NotFoundError:
            logger.info("document_missing_using_default path=%s", path)
            return Document(path=path, content=default_content, sha=None, exists=False)

    def put_document(self, path: str, content: str, sha: str | None = None, message: str | None = None) -> str:
        """Write `content`, returning the new sha.

        Without `sha` the store creates the file; with a stale `sha` it
        rejects the write and `ConflictError` is raised.
        """

        body: dict[str, str] = {
            "message": message or self.settings.commit_message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            body["sha"] = sha

        res = self._send("PUT", self._contents_url(path), json=body, headers=self._headers())
        try:
            self._raise_for_status(res, "put", path)
        except ConflictError:
            logger.warning("document_put_conflict path=%s base_sha=%s", path, sha)
            raise

        payload = self._json(res)
        content_info = payload.get("content") if isinstance(payload, dict) else None
        new_sha = content_info.get("sha") if isinstance(content_info, dict) else None
        if not isinstance(new_sha, str) or not new_sha:
            raise DecodeError(f"put {path}: response lacks content.sha")
        logger.info("document_put_ok path=%s sha=%s created=%s", path, new_sha, sha is None)
        return new_sha

    # -- listings ---------------------------------------------------------

    def _entries(self, items: list, where: str) -> list[RepositoryEntry]:
        entries: list[RepositoryEntry] = []
        for item in items:
            if not isinstance(item, dict) or "name" not in item or "path" not in item:
                raise DecodeError(f"{where}: malformed entry {item!r:.80}")
            entries.append(RepositoryEntry.from_api(item))
        return entries

    def list_directory(self, path: str = "") -> list[RepositoryEntry]:
        res = self._send("GET", self._contents_url(path), headers=self._headers())
        self._raise_for_status(res, "list", path)
        payload = self._json(res)
        where = f"list {path or '/'}"
        if isinstance(payload, list):
            return self._entries(payload, where)
        if isinstance(payload, dict):
            # A file path answers with a single object instead of an array.
            return self._entries([payload], where)
        raise DecodeError(f"{where}: unexpected payload {type(payload).__name__}")

    def search(self, query: str) -> list[RepositoryEntry]:
        """Code search scoped to the repository's markdown files.

        Results may lag behind the repository; index rebuilds walk the tree
        with `list_directory` instead.
        """

        if not (query or "").strip():
            return self.list_directory("")

        owner, repo = self._repo()
        q = f"{query} repo:{owner}/{repo} language:{SEARCH_LANGUAGE}"
        url = f"{self.settings.api_base.rstrip('/')}/search/code"
        res = self._send("GET", url, params={"q": q}, headers=self._headers())
        self._raise_for_status(res, "search", query)
        payload = self._json(res)
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise DecodeError(f"search {query}: response lacks items")
        # Search hits carry no "type" field and are always files.
        return self._entries(items, f"search {query}")
