from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

from journalsync.core.errors import IndexStoreError
from journalsync.providers.github.models import IndexEntry


class IndexSink(Protocol):
    def delete_all(self, domain: str) -> None: ...

    def add_batch(self, items: list[IndexEntry]) -> None: ...


@contextmanager
def store_errors(op: str):
    try:
        yield
    except sqlite3.Error as e:
        raise IndexStoreError(f"{op}: {e}") from e


def now_iso():
    return datetime.now().isoformat(timespec="seconds")


def get_conn(db_path: str):
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str):
    conn = get_conn(db_path)
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS index_items (
          id TEXT PRIMARY KEY,
          domain TEXT NOT NULL,
          name TEXT,
          path TEXT,
          content TEXT,
          created_at TEXT,
          indexed_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS index_runs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          domain TEXT,
          status TEXT,
          started_at DATETIME,
          finished_at DATETIME,
          indexed_count INTEGER DEFAULT 0,
          error_count INTEGER DEFAULT 0,
          summary_json TEXT
        )
        """
    )

    cur.execute("CREATE INDEX IF NOT EXISTS idx_index_items_domain ON index_items(domain)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_index_items_path ON index_items(path)")

    conn.commit()
    conn.close()


class SqliteIndexStore:
    """Local index sink: one row per indexed document, keyed by a path-derived id.

    Querying the stored text is left to whatever reads the database.
    """

    def __init__(self, db_path: str, domain: str):
        self.db_path = db_path
        self.domain = domain
        with store_errors("init_db"):
            init_db(db_path)

    def _db(self):
        return get_conn(self.db_path)

    def delete_all(self, domain: str) -> None:
        with store_errors("delete_all"):
            conn = self._db()
            try:
                conn.execute("DELETE FROM index_items WHERE domain=?", (domain,))
                conn.commit()
            finally:
                conn.close()

    def add_batch(self, items: list[IndexEntry]) -> None:
        if not items:
            return
        rows = [
            (
                item.identifier(self.domain),
                self.domain,
                item.name,
                item.path,
                item.content,
                item.created_at.isoformat(timespec="seconds"),
            )
            for item in items
        ]
        with store_errors("add_batch"):
            conn = self._db()
            try:
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO index_items(id,domain,name,path,content,created_at)
                    VALUES (?,?,?,?,?,?)
                    """,
                    rows,
                )
                conn.commit()
            finally:
                conn.close()

    def count(self, domain: str | None = None) -> int:
        conn = self._db()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM index_items WHERE domain=?",
            (domain or self.domain,),
        ).fetchone()
        conn.close()
        return int(row["n"])

    def items(self, domain: str | None = None) -> list[dict]:
        conn = self._db()
        rows = conn.execute(
            "SELECT id,name,path,content,created_at FROM index_items WHERE domain=? ORDER BY path",
            (domain or self.domain,),
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    def start_run(self) -> int:
        with store_errors("start_run"):
            conn = self._db()
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO index_runs(domain,status,started_at,summary_json) VALUES (?,?,?,?)",
                (self.domain, "running", now_iso(), "{}"),
            )
            rid = cur.lastrowid
            conn.commit()
            conn.close()
        return rid

    def finish_run(self, run_id: int, status: str, indexed_count: int, errors: Iterable[str]):
        errors = list(errors)
        summary = {"indexed_count": indexed_count, "errors": errors[:50]}
        with store_errors("finish_run"):
            conn = self._db()
            conn.execute(
                """
                UPDATE index_runs
                   SET status=?, finished_at=?, indexed_count=?, error_count=?, summary_json=?
                 WHERE id=?
                """,
                (status, now_iso(), indexed_count, len(errors), json.dumps(summary, ensure_ascii=False), run_id),
            )
            conn.commit()
            conn.close()

    def last_run(self) -> dict | None:
        conn = self._db()
        row = conn.execute(
            "SELECT * FROM index_runs WHERE domain=? ORDER BY id DESC LIMIT 1",
            (self.domain,),
        ).fetchone()
        conn.close()
        return dict(row) if row else None
