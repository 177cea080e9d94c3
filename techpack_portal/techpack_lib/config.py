"""Configuration helpers for locating data and reaching the portal server."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_TRANSLATE_URL = "https://api.mymemory.translated.net/get"

DATA_ENV = "TECHPACK_PORTAL_DATA"
URL_ENV = "TECHPACK_PORTAL_URL"


@dataclass(frozen=True)
class PortalConfig:
    data_dir: Path
    uploads_dir: Path
    base_url: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    translate_url: str = DEFAULT_TRANSLATE_URL
    primary_language: str = "de"
    secondary_language: str = "tr"

    @property
    def specs_path(self) -> Path:
        return self.data_dir / "specs.json"

    @property
    def tickets_path(self) -> Path:
        return self.data_dir / "tickets.json"


def detect_repo_root() -> Path:
    """Return the root of the techpack_portal package."""
    return Path(__file__).resolve().parents[1]


def default_data_dir(repo_root: Path) -> Path:
    """Data lives beside the package unless overridden."""
    return repo_root.parent / "portal_data"


def default_base_url(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> str:
    return f"http://{host}:{port}"


def load_config(
    data_dir: Optional[Path] = None,
    base_url: Optional[str] = None,
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
) -> PortalConfig:
    env_data = os.environ.get(DATA_ENV)
    if data_dir:
        resolved_data = Path(data_dir)
    elif env_data:
        resolved_data = Path(env_data)
    else:
        resolved_data = default_data_dir(detect_repo_root())
    resolved_data = resolved_data.expanduser().resolve()
    resolved_data.mkdir(parents=True, exist_ok=True)
    uploads_dir = resolved_data / "uploads"
    uploads_dir.mkdir(parents=True, exist_ok=True)
    resolved_url = (base_url or os.environ.get(URL_ENV) or default_base_url(host, port)).rstrip("/")
    if refresh_interval <= 0:
        raise ValueError("refresh_interval must be positive")
    return PortalConfig(
        data_dir=resolved_data,
        uploads_dir=uploads_dir,
        base_url=resolved_url,
        host=host,
        port=port,
        refresh_interval=refresh_interval,
    )
