from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

MAP_TOKEN_PLACEHOLDER = "YOUR_MAPBOX_TOKEN"


@dataclass(frozen=True)
class AppConfig:
    """Immutable application configuration."""

    app_name: str = "Construction Site Dashboard"
    storage_backend: str = "json"          # "json" or "memory"
    data_dir: Path = Path("data")
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    host: str = "127.0.0.1"
    port: int = 8000

    # Map panel on the Materials page; stays disabled while the placeholder is set
    map_access_token: str = MAP_TOKEN_PLACEHOLDER


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the configuration from environment variables.

    Args:
        environ: Mapping to read instead of os.environ.

    Returns:
        AppConfig: Resolved configuration.
    """
    env = os.environ if environ is None else environ
    log_file = env.get("SITEBOARD_LOG_FILE")
    return AppConfig(
        storage_backend=env.get("SITEBOARD_STORAGE", "json").strip().lower(),
        data_dir=Path(env.get("SITEBOARD_DATA_DIR", "data")),
        log_level=env.get("SITEBOARD_LOG_LEVEL", "INFO").upper(),
        log_file=Path(log_file) if log_file else None,
        host=env.get("SITEBOARD_HOST", "127.0.0.1"),
        port=int(env.get("SITEBOARD_PORT", "8000")),
        map_access_token=env.get("MAP_ACCESS_TOKEN", MAP_TOKEN_PLACEHOLDER),
    )


CONFIG = load_config()
