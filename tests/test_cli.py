import json
import sqlite3
from pathlib import Path

from typer.testing import CliRunner

from journalsync.cli import main as cli_module
from journalsync.core import config as config_module
from journalsync.core.config import AppConfig
from journalsync.index.store import SqliteIndexStore

from conftest import FakeRepository

runner = CliRunner()


def _isolate(monkeypatch, tmp_path: Path) -> Path:
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_TEMPLATE_PATH", tmp_path / "missing-template.yaml")
    monkeypatch.setattr(config_module, "ensure_runtime_dirs", lambda _cfg: None)
    return tmp_path / "config.yaml"


def test_config_set_accepts_valid_settings(monkeypatch, tmp_path: Path):
    path = _isolate(monkeypatch, tmp_path)

    result = runner.invoke(
        cli_module.app,
        ["config-set", "--token", "t", "--repository", "alice/notes", "--path", str(path)],
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["is_configured"] is True
    assert config_module.load_config(path).github.repository == "alice/notes"


def test_config_set_rejects_bad_repository(monkeypatch, tmp_path: Path):
    path = _isolate(monkeypatch, tmp_path)

    result = runner.invoke(cli_module.app, ["config-set", "--repository", "badformat", "--path", str(path)])

    assert result.exit_code == 2
    assert "repository_invalid: badformat" in result.output
    assert config_module.load_config(path).github.repository == ""


def test_config_set_rejects_template_without_placeholders(monkeypatch, tmp_path: Path):
    path = _isolate(monkeypatch, tmp_path)

    result = runner.invoke(cli_module.app, ["config-set", "--path-template", "log/today.md", "--path", str(path)])

    assert result.exit_code == 2
    assert "path_template_missing_placeholder: YYYY" in result.output


def test_config_validate_strict_fails_when_unconfigured(monkeypatch, tmp_path: Path):
    path = _isolate(monkeypatch, tmp_path)

    result = runner.invoke(cli_module.app, ["config-validate", "--strict", "--path", str(path)])

    assert result.exit_code == 2
    payload = json.loads(result.output)
    assert payload["ok"] is False
    assert "token_missing" in payload["errors"]


def _wire(monkeypatch, tmp_path: Path, repo: FakeRepository) -> Path:
    path = _isolate(monkeypatch, tmp_path)
    cfg = AppConfig()
    cfg.github.token = "tok-123"
    cfg.github.repository = "alice/notes"
    cfg.index.path = str(tmp_path / "runtime" / "index.db")
    cfg.logging.file = str(tmp_path / "runtime" / "service.log")
    config_module.save_config(cfg, path)
    monkeypatch.setattr(cli_module, "setup_logging", lambda *_args, **_kw: None)
    monkeypatch.setattr(cli_module, "_build_client", lambda _cfg: repo)
    return path


def _stale_edit(tmp_path: Path) -> tuple[FakeRepository, str, Path]:
    repo = FakeRepository({"notes/a.md": "v1"})
    stale = repo.sha_of("notes/a.md")
    repo.remote_edit("notes/a.md", "theirs")
    local = tmp_path / "a.md"
    local.write_text("mine", encoding="utf-8")
    return repo, stale, local


def test_doc_put_conflict_rejects_unknown_answer(monkeypatch, tmp_path: Path):
    repo, stale, local = _stale_edit(tmp_path)
    path = _wire(monkeypatch, tmp_path, repo)

    result = runner.invoke(
        cli_module.app,
        ["doc-put", "notes/a.md", "--file", str(local), "--sha", stale, "--path", str(path)],
        input="mien\n",
    )

    assert result.exit_code != 0
    assert "accepted_remote" not in result.output
    assert repo.files["notes/a.md"][0] == "theirs"
    assert [c for c in repo.calls if c[0] == "put"] == [("put", "notes/a.md")]


def test_doc_put_conflict_reprompts_until_valid_choice(monkeypatch, tmp_path: Path):
    repo, stale, local = _stale_edit(tmp_path)
    path = _wire(monkeypatch, tmp_path, repo)

    result = runner.invoke(
        cli_module.app,
        ["doc-put", "notes/a.md", "--file", str(local), "--sha", stale, "--path", str(path)],
        input="mien\nmine\n",
    )

    assert result.exit_code == 0, result.output
    assert repo.files["notes/a.md"][0] == "mine"


def test_doc_put_conflict_accept_remote(monkeypatch, tmp_path: Path):
    repo, stale, local = _stale_edit(tmp_path)
    path = _wire(monkeypatch, tmp_path, repo)

    result = runner.invoke(
        cli_module.app,
        ["doc-put", "notes/a.md", "--file", str(local), "--sha", stale, "--path", str(path)],
        input="remote\n",
    )

    assert result.exit_code == 1
    assert "accepted_remote" in result.output
    assert repo.files["notes/a.md"][0] == "theirs"


def test_journal_append_blank_entry_reports_json(monkeypatch, tmp_path: Path):
    repo = FakeRepository()
    path = _wire(monkeypatch, tmp_path, repo)

    result = runner.invoke(cli_module.app, ["journal-append", "   ", "--path", str(path)])

    assert result.exit_code == 2
    payload = json.loads(result.output)
    assert payload["ok"] is False
    assert payload["code"] == "entry_empty"
    assert repo.calls == []


def test_index_rebuild_store_failure_reports_json(monkeypatch, tmp_path: Path):
    repo = FakeRepository({"a.md": "alpha"})
    path = _wire(monkeypatch, tmp_path, repo)
    db = str(tmp_path / "broken" / "index.db")
    store = SqliteIndexStore(db, "journalsync")
    conn = sqlite3.connect(db)
    conn.execute("DROP TABLE index_items")
    conn.commit()
    conn.close()
    monkeypatch.setattr(cli_module, "_build_store", lambda _cfg: store)

    result = runner.invoke(cli_module.app, ["index-rebuild", "--path", str(path)])

    assert result.exit_code == 2
    assert '"code": "index_store_failed"' in result.output
    assert store.last_run()["status"] == "failed"
    assert repo.calls == []
