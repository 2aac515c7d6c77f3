from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import click
import typer
from rich.console import Console
from rich.table import Table

from journalsync.core import paths
from journalsync.core.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    load_config,
    save_config,
    validate_settings,
)
from journalsync.core.errors import ConflictError, JournalSyncError
from journalsync.core.logging_setup import setup_logging
from journalsync.index.crawler import RepositoryCrawler, rebuild_index
from journalsync.index.store import SqliteIndexStore
from journalsync.providers.github import GitHubClient
from journalsync.sync.journal import JournalService
from journalsync.sync.session import EditSession

app = typer.Typer(add_completion=False)
console = Console()
logger = logging.getLogger("journalsync.cli")

RESOLUTIONS = ["mine", "remote"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(e: JournalSyncError) -> None:
    _print(e.to_payload())
    raise typer.Exit(2)


def _bootstrap(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    cfg = load_config(path)
    setup_logging(cfg.logging.level, cfg.logging.file)
    return cfg


def _build_client(cfg: AppConfig) -> GitHubClient:
    return GitHubClient(cfg.github)


def _build_store(cfg: AppConfig) -> SqliteIndexStore:
    return SqliteIndexStore(cfg.index.path, cfg.crawl.domain)


def _build_crawler(cfg: AppConfig, client: GitHubClient) -> RepositoryCrawler:
    return RepositoryCrawler(
        client,
        eligible_suffixes=cfg.crawl.eligible_suffixes,
        max_concurrency=cfg.crawl.max_concurrency,
        domain=cfg.crawl.domain,
    )


@app.command("config-show")
def config_show(path: Path = DEFAULT_CONFIG_PATH):
    """Show current config.yaml (token masked)."""
    cfg = load_config(path)
    data = cfg.model_dump()
    if data["github"]["token"]:
        data["github"]["token"] = "***"
    _print(data)


@app.command("config-set")
def config_set(
    token: Optional[str] = typer.Option(None, "--token", help="GitHub personal access token"),
    repository: Optional[str] = typer.Option(None, "--repository", help="owner/name"),
    path_template: Optional[str] = typer.Option(None, "--path-template", help="e.g. log/YYYY/MM/DD.md"),
    path: Path = DEFAULT_CONFIG_PATH,
):
    """Update repository settings; rejected values leave config.yaml untouched."""
    cfg = load_config(path)
    updated = cfg.github.model_copy()
    if token is not None:
        updated.token = token
    if repository is not None:
        updated.repository = repository.strip()
    if path_template is not None:
        updated.path_template = path_template.strip()

    problems = [p for p in validate_settings(updated) if not p.endswith("_missing")]
    if problems:
        _print({"ok": False, "errors": problems})
        raise typer.Exit(2)

    cfg.github = updated
    save_config(cfg, path)
    _print({"ok": True, "is_configured": updated.is_configured})


@app.command("config-validate")
def config_validate(
    path: Path = DEFAULT_CONFIG_PATH,
    strict: bool = typer.Option(False, "--strict", help="Return non-zero when validation fails."),
):
    """Validate settings without touching the network."""
    out: dict[str, Any] = {
        "ok": True,
        "checked_at": _now_iso(),
        "config_path": str(path),
        "errors": [],
    }
    try:
        cfg = load_config(path)
    except Exception as e:
        out["ok"] = False
        out["errors"].append(f"load_config_failed: {e}")
        _print(out)
        if strict:
            raise typer.Exit(2)
        return

    out["errors"].extend(validate_settings(cfg.github))
    out["is_configured"] = cfg.github.is_configured
    out["ok"] = len(out["errors"]) == 0
    _print(out)
    if strict and not out["ok"]:
        raise typer.Exit(2)


@app.command()
def status(path: Path = DEFAULT_CONFIG_PATH):
    """Show settings and index summary."""
    cfg = load_config(path)
    last = _build_store(cfg).last_run()

    table = Table(title="journalsync status")
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("config", str(path))
    table.add_row("repository", cfg.github.repository or "(unset)")
    table.add_row("token", "set" if cfg.github.token else "(unset)")
    table.add_row("path_template", cfg.github.path_template)
    table.add_row("configured", "yes" if cfg.github.is_configured else "no")
    table.add_row("today", paths.resolve(cfg.github.path_template))
    table.add_row("index_db", cfg.index.path)
    if last:
        table.add_row("last_index_rebuild", str(last.get("finished_at") or last.get("started_at")))
        table.add_row("last_index_status", str(last.get("status")))
        table.add_row("indexed_files", str(last.get("indexed_count")))
    else:
        table.add_row("last_index_rebuild", "never")
    table.add_row("log", cfg.logging.file)
    console.print(table)


@app.command("path")
def today_path(path: Path = DEFAULT_CONFIG_PATH):
    """Print the journal path the current time resolves to."""
    cfg = load_config(path)
    print(paths.resolve(cfg.github.path_template))


@app.command("journal-show")
def journal_show(path: Path = DEFAULT_CONFIG_PATH):
    """Print today's journal (default heading when the file does not exist yet)."""
    cfg = _bootstrap(path)
    try:
        doc = JournalService(cfg.github, _build_client(cfg)).load_today()
    except JournalSyncError as e:
        _fail(e)
    console.rule(doc.path + ("" if doc.exists else " (new)"))
    print(doc.content)


@app.command("journal-append")
def journal_append(text: str = typer.Argument(..., help="Entry text"), path: Path = DEFAULT_CONFIG_PATH):
    """Append an entry to today's journal and commit it."""
    cfg = _bootstrap(path)
    try:
        doc = JournalService(cfg.github, _build_client(cfg)).append(text)
    except ValueError as e:
        _print({"ok": False, "code": "entry_empty", "error": str(e)})
        raise typer.Exit(2)
    except ConflictError as e:
        payload = e.to_payload()
        payload["hint"] = "journal was edited elsewhere; run journal-append again"
        _print(payload)
        raise typer.Exit(2)
    except JournalSyncError as e:
        _fail(e)
    _print({"ok": True, "path": doc.path, "sha": doc.sha})


@app.command("doc-get")
def doc_get(doc_path: str = typer.Argument(...), path: Path = DEFAULT_CONFIG_PATH):
    """Fetch one document with its sha."""
    cfg = _bootstrap(path)
    try:
        doc = _build_client(cfg).fetch_document(doc_path)
    except JournalSyncError as e:
        _fail(e)
    _print({"ok": True, **doc.model_dump()})


@app.command("doc-put")
def doc_put(
    doc_path: str = typer.Argument(...),
    file: Path = typer.Option(..., "--file", exists=True, dir_okay=False, help="Local file with new content"),
    sha: Optional[str] = typer.Option(None, "--sha", help="sha the edit is based on; omit to read it now"),
    path: Path = DEFAULT_CONFIG_PATH,
):
    """Write a document, resolving a remote conflict interactively."""
    cfg = _bootstrap(path)
    client = _build_client(cfg)
    try:
        if sha is None:
            session = EditSession.open(client, doc_path)
        else:
            session = EditSession(client, doc_path, sha=sha)
        session.content = file.read_text(encoding="utf-8")

        try:
            new_sha = session.save()
        except ConflictError:
            remote = session.conflict.remote_content if session.conflict else ""
            console.print("[yellow]The document was changed elsewhere.[/yellow] Remote version:")
            print(remote)
            choice = typer.prompt(
                "Keep mine (overwrites the other change) or accept remote?",
                type=click.Choice(RESOLUTIONS, case_sensitive=False),
            )
            if choice == "mine":
                session.keep_mine()
                new_sha = session.save()
            else:
                session.accept_remote()
                _print({"ok": False, "code": "conflict", "resolution": "accepted_remote", "sha": session.base_sha})
                raise typer.Exit(1)
    except JournalSyncError as e:
        _fail(e)
    _print({"ok": True, "path": doc_path, "sha": new_sha})


@app.command("ls")
def ls(dir_path: str = typer.Argument("", help="Directory; empty lists the root"), path: Path = DEFAULT_CONFIG_PATH):
    """List a repository directory."""
    cfg = _bootstrap(path)
    try:
        entries = _build_client(cfg).list_directory(dir_path)
    except JournalSyncError as e:
        _fail(e)
    table = Table(title=dir_path or "/")
    table.add_column("Kind")
    table.add_column("Path")
    for entry in entries:
        table.add_row(entry.kind.value, entry.path)
    console.print(table)


@app.command()
def search(query: str = typer.Argument(...), path: Path = DEFAULT_CONFIG_PATH):
    """Search markdown documents with the remote code search."""
    cfg = _bootstrap(path)
    try:
        entries = _build_client(cfg).search(query)
    except JournalSyncError as e:
        _fail(e)
    _print({"ok": True, "count": len(entries), "items": [e.model_dump(mode="json") for e in entries]})


@app.command("index-rebuild")
def index_rebuild(path: Path = DEFAULT_CONFIG_PATH):
    """Drop the local index and rebuild it from the whole repository."""
    cfg = _bootstrap(path)
    client = _build_client(cfg)
    try:
        result = rebuild_index(_build_crawler(cfg, client), _build_store(cfg))
    except JournalSyncError as e:
        _fail(e)
    _print(
        {
            "ok": result.ok,
            "indexed_count": result.indexed_count,
            "error_count": len(result.errors),
            "errors": result.errors,
        }
    )
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def serve():
    """Run the local HTTP API."""
    from journalsync.web.main import main as web_main

    web_main()


def main():
    app()


if __name__ == "__main__":
    main()
