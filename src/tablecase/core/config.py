from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    download_dir: Path


@dataclass(frozen=True)
class EndpointSettings:
    server_url: str
    app_id: str
    username: str
    password: str
    fetch_limit: int
    timeout_seconds: float


DEFAULT_APP_ID = "default"
DEFAULT_FETCH_LIMIT = 1000
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    download_raw = os.getenv("TABLECASE_DOWNLOAD_DIR")
    download_dir = Path(download_raw).expanduser().resolve() if download_raw else root

    return AppPaths(
        project_root=root,
        download_dir=download_dir,
    )


def load_endpoint_settings() -> EndpointSettings:
    return EndpointSettings(
        server_url=os.getenv("TABLECASE_SERVER_URL", "").strip(),
        app_id=os.getenv("TABLECASE_APP_ID", "").strip() or DEFAULT_APP_ID,
        username=os.getenv("TABLECASE_USERNAME", "").strip(),
        password=os.getenv("TABLECASE_PASSWORD", ""),
        fetch_limit=_read_int_env("TABLECASE_FETCH_LIMIT", DEFAULT_FETCH_LIMIT),
        timeout_seconds=_read_float_env("TABLECASE_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
    )


def read_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default
