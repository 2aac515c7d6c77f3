from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

from journalsync.core.errors import InvalidRepositoryIdentifierError, NotConfiguredError
from journalsync.core.paths import PLACEHOLDERS

PROJECT_ROOT = Path(os.environ.get("JOURNALSYNC_HOME", str(Path.home() / ".journalsync"))).expanduser()
RUNTIME_DIR = PROJECT_ROOT / "runtime"
DEFAULT_CONFIG_PATH = Path(os.environ.get("JOURNALSYNC_CONFIG", str(PROJECT_ROOT / "config.yaml"))).expanduser()
DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).resolve().parents[1] / "config.yaml.example"

DEFAULT_PATH_TEMPLATE = "log/YYYY/MM/DD.md"


class GitHubConfig(BaseModel):
    """Settings for the remote repository.

    `token` is an opaque personal access token; `repository` is "owner/name".
    """

    token: str = ""
    repository: str = ""
    path_template: str = DEFAULT_PATH_TEMPLATE
    api_base: str = "https://api.github.com"
    timeout_sec: int = Field(default=30, ge=1, le=600)
    commit_message: str = "Add journal"

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.repository and self.path_template)


class CrawlConfig(BaseModel):
    eligible_suffixes: list[str] = Field(default_factory=lambda: [".md"])
    # Upper bound on simultaneous in-flight requests during an index rebuild.
    max_concurrency: int = Field(default=8, ge=1, le=64)
    domain: str = "journalsync"


class IndexConfig(BaseModel):
    path: str = str(RUNTIME_DIR / "index.db")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = str(RUNTIME_DIR / "service.log")


class AppConfig(BaseModel):
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Local HTTP API
    web_bind_host: str = "127.0.0.1"
    web_port: int = 8765


def split_repository(identifier: str) -> tuple[str, str]:
    parts = (identifier or "").strip().split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidRepositoryIdentifierError(
            f"repository must be 'owner/name', got {identifier!r}"
        )
    return parts[0], parts[1]


def validate_path_template(template: str) -> list[str]:
    return [p for p in PLACEHOLDERS if p not in (template or "")]


def validate_settings(settings: GitHubConfig) -> list[str]:
    problems: list[str] = []
    if not settings.token:
        problems.append("token_missing")
    if not settings.repository:
        problems.append("repository_missing")
    else:
        try:
            split_repository(settings.repository)
        except InvalidRepositoryIdentifierError:
            problems.append(f"repository_invalid: {settings.repository}")
    if not settings.path_template:
        problems.append("path_template_missing")
    else:
        for placeholder in validate_path_template(settings.path_template):
            problems.append(f"path_template_missing_placeholder: {placeholder}")
    return problems


def require_configured(settings: GitHubConfig) -> tuple[str, str]:
    """Return (owner, name) or raise before any request is issued."""
    if not settings.is_configured:
        raise NotConfiguredError("token, repository and path_template must all be set")
    return split_repository(settings.repository)


def ensure_runtime_dirs(cfg: AppConfig):
    Path(cfg.logging.file).expanduser().parent.mkdir(parents=True, exist_ok=True)
    Path(cfg.index.path).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _dump(cfg: AppConfig) -> str:
    import yaml

    return yaml.safe_dump(cfg.model_dump(), allow_unicode=True, sort_keys=False)


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    import yaml

    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        if DEFAULT_CONFIG_TEMPLATE_PATH.exists():
            try:
                template_text = DEFAULT_CONFIG_TEMPLATE_PATH.read_text(encoding="utf-8")
                data = yaml.safe_load(template_text) or {}
                cfg = AppConfig.model_validate(data)
                path.write_text(template_text, encoding="utf-8")
            except Exception:
                cfg = AppConfig()
                path.write_text(_dump(cfg), encoding="utf-8")
        else:
            cfg = AppConfig()
            path.write_text(_dump(cfg), encoding="utf-8")
        ensure_runtime_dirs(cfg)
        return cfg

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    cfg = AppConfig.model_validate(data)
    ensure_runtime_dirs(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path = DEFAULT_CONFIG_PATH):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_dump(cfg), encoding="utf-8")


class SettingsStore:
    """Key-value persistence for the repository settings inside config.yaml."""

    def __init__(self, path: Path = DEFAULT_CONFIG_PATH):
        self.path = path

    def load(self) -> GitHubConfig:
        return load_config(self.path).github

    def save(self, settings: GitHubConfig) -> None:
        cfg = load_config(self.path)
        cfg.github = settings
        save_config(cfg, self.path)
