from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from journalsync.core.errors import CancelledError, JournalSyncError
from journalsync.index.store import IndexSink, SqliteIndexStore
from journalsync.providers.github.client import GitHubClient
from journalsync.providers.github.models import IndexEntry, RepositoryEntry

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    items: list[IndexEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    indexed_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


class RepositoryCrawler:
    """Walks the whole repository and turns every eligible file into an `IndexEntry`.

    The tree is processed one level at a time. All directories of a level
    are listed together, all of their eligible files are fetched together,
    and the level joins before its per-directory batches go to the sink and
    the next level is spawned. Workers never wait on other workers, so the
    bounded pool (`max_concurrency` requests in flight) cannot deadlock.

    Only a failed root listing raises; every other failure is recorded as
    `"<path>: <reason>"` and the crawl carries on.
    """

    def __init__(
        self,
        client: GitHubClient,
        eligible_suffixes: list[str] | tuple[str, ...] = (".md",),
        max_concurrency: int = 8,
        domain: str = "journalsync",
        cancel_event: threading.Event | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.eligible_suffixes = tuple(eligible_suffixes)
        self.max_concurrency = max(1, int(max_concurrency))
        self.domain = domain
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock

    def cancel(self) -> None:
        self.cancel_event.set()

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CancelledError("cancelled")

    def _list(self, path: str) -> list[RepositoryEntry]:
        self._check_cancelled()
        return self.client.list_directory(path)

    def _fetch(self, entry: RepositoryEntry) -> IndexEntry:
        self._check_cancelled()
        doc = self.client.fetch_document(entry.path)
        return IndexEntry(name=entry.name, path=entry.path, content=doc.content, created_at=self.clock())

    def is_eligible(self, entry: RepositoryEntry) -> bool:
        return not entry.is_dir and entry.has_suffix(self.eligible_suffixes)

    def _emit(self, sink: IndexSink | None, dir_path: str, items: list[IndexEntry], result: CrawlResult) -> None:
        if not items:
            return
        if sink is not None:
            try:
                sink.add_batch(items)
            except Exception as e:
                logger.exception("index_batch_failed dir=%s items=%s", dir_path or "/", len(items))
                result.errors.append(f"{dir_path or '/'}: index_add_failed: {e}")
                return
        result.items.extend(items)
        result.indexed_count += len(items)
        logger.debug("index_batch_added dir=%s items=%s", dir_path or "/", len(items))

    def crawl(self, root: str = "", sink: IndexSink | None = None) -> CrawlResult:
        result = CrawlResult()
        level: list[tuple[str, list[RepositoryEntry]]] = [(root, self._list(root))]
        depth = 0

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="crawl") as pool:
            while level:
                fetches: dict[Future, tuple[str, RepositoryEntry]] = {}
                for dir_path, entries in level:
                    for entry in entries:
                        if self.is_eligible(entry):
                            fetches[pool.submit(self._fetch, entry)] = (dir_path, entry)

                batches: dict[str, list[IndexEntry]] = {dir_path: [] for dir_path, _ in level}
                wait(fetches)
                for fut, (dir_path, entry) in fetches.items():
                    try:
                        batches[dir_path].append(fut.result())
                    except JournalSyncError as e:
                        logger.warning("index_fetch_failed path=%s code=%s", entry.path, e.code)
                        result.errors.append(f"{entry.path}: {e.message}")

                for dir_path, _ in level:
                    self._emit(sink, dir_path, batches[dir_path], result)

                subdirs = [e for _, entries in level for e in entries if e.is_dir]
                if subdirs and self.cancel_event.is_set():
                    result.errors.extend(f"{d.path}: cancelled" for d in subdirs)
                    break

                listings = {pool.submit(self._list, d.path): d for d in subdirs}
                wait(listings)
                level = []
                for fut, directory in listings.items():
                    try:
                        level.append((directory.path, fut.result()))
                    except JournalSyncError as e:
                        logger.warning("index_list_failed path=%s code=%s", directory.path, e.code)
                        result.errors.append(f"{directory.path}: {e.message}")
                depth += 1

        logger.info(
            "crawl_finished root=%s depth=%s indexed=%s errors=%s",
            root or "/",
            depth,
            result.indexed_count,
            len(result.errors),
        )
        return result

    def rebuild(self, sink: IndexSink, root: str = "") -> CrawlResult:
        """Delete everything indexed for this domain, then crawl from `root`.

        A failing delete is raised and the crawl never starts.
        """
        sink.delete_all(self.domain)
        return self.crawl(root, sink)


def rebuild_index(crawler: RepositoryCrawler, store: SqliteIndexStore, root: str = "") -> CrawlResult:
    """Run `crawler.rebuild` against `store`, recording the run."""
    run_id = store.start_run()
    try:
        result = crawler.rebuild(store, root)
    except Exception as e:
        store.finish_run(run_id, "failed", 0, [str(e)])
        raise
    store.finish_run(run_id, "success" if result.ok else "partial", result.indexed_count, result.errors)
    return result
