"""Global configuration — XDG paths, config file, env vars, defaults."""

from __future__ import annotations

import dataclasses
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import yaml


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "reposcan"
    return Path.home() / ".local" / "share" / "reposcan"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "reposcan"
    return Path.home() / ".config" / "reposcan"


def _default_work_dir() -> Path:
    return Path(tempfile.gettempdir())


_PATH_FIELDS = {"data_dir", "config_dir", "work_dir"}

# Environment variable → (field, converter)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "REPOSCAN_HOST": ("web_host", str),
    "REPOSCAN_PORT": ("web_port", int),
    "REPOSCAN_STORE": ("store_backend", str),
    "REPOSCAN_WORK_DIR": ("work_dir", Path),
    "REPOSCAN_MAX_CONCURRENT_SCANS": ("max_concurrent_scans", int),
    "REPOSCAN_MAX_QUEUED_SCANS": ("max_queued_scans", int),
    "REPOSCAN_JOB_TTL": ("job_ttl", float),
    "REPOSCAN_MAX_JOBS": ("max_jobs", int),
    "REPOSCAN_TOOL_TIMEOUT": ("tool_timeout", float),
    "REPOSCAN_CODEQL": ("codeql_path", str),
    "REPOSCAN_GIT": ("git_path", str),
    "REPOSCAN_QUERY_SUITE": ("query_suite", str),
    "REPOSCAN_DEFAULT_LANGUAGE": ("default_language", str),
    "REPOSCAN_GITHUB_API_URL": ("github_api_url", str),
    "GITHUB_TOKEN": ("github_token", str),
}


@dataclass
class ReposcanConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    work_dir: Path = field(default_factory=_default_work_dir)
    web_host: str = "127.0.0.1"
    web_port: int = 8480
    cors_origins: list[str] = field(default_factory=list)
    store_backend: str = "memory"
    job_ttl: float = 24 * 60 * 60
    max_jobs: int = 1000
    max_concurrent_scans: int = 2
    max_queued_scans: int = 100
    tool_timeout: float = 600.0
    max_output_bytes: int = 50 * 1024 * 1024
    git_path: str = "git"
    codeql_path: str = "codeql"
    query_suite: str = "security-extended"
    default_language: str = "javascript"
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    check_engine_on_startup: bool = True
    verbose: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "reposcan.db"

    @classmethod
    def load(cls, path: str | Path | None = None) -> ReposcanConfig:
        """Load config from a YAML file, then environment variables."""
        config = cls()

        config_file = Path(path) if path else config.config_dir / "config.yaml"
        if config_file.is_file():
            config.apply(_read_config_file(config_file))

        for env_name, (attr, convert) in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(config, attr, convert(value))

        # Container platforms hand the listening port over as PORT
        env_port = os.environ.get("PORT")
        if env_port and not os.environ.get("REPOSCAN_PORT"):
            config.web_port = int(env_port)

        env_origins = os.environ.get("REPOSCAN_CORS_ORIGINS")
        if env_origins:
            config.cors_origins = [
                o.strip() for o in env_origins.split(",") if o.strip()
            ]

        return config

    def apply(self, values: dict) -> None:
        """Overlay values from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(self)}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"Unknown config option: {key}")
            if key in _PATH_FIELDS:
                value = Path(value).expanduser()
            setattr(self, key, value)


def _read_config_file(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data
