"""
Configuration for the node editor backend and CLI.

Everything is read from environment variables so the service can be
configured by its unit file:
- NODE_EDITOR_DATA_DIR: directory of the JSON graph store
- NODE_EDITOR_API_BASE: API root the CLI talks to
- NODE_EDITOR_CORS_ORIGINS: comma separated list of allowed origins
- NODE_EDITOR_LOG_LEVEL: logging level name
"""

import logging
import os
from pathlib import Path

DEFAULT_API_BASE = "http://127.0.0.1:8765/api"
DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]


def get_data_dir() -> Path:
    """Directory where saved graphs are kept."""
    return Path(os.environ.get(
        "NODE_EDITOR_DATA_DIR",
        str(Path.home() / ".node-editor" / "graphs")
    ))


def get_api_base() -> str:
    return os.environ.get("NODE_EDITOR_API_BASE", DEFAULT_API_BASE).rstrip("/")


def get_cors_origins() -> list[str]:
    raw = os.environ.get("NODE_EDITOR_CORS_ORIGINS")
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_log_level() -> int:
    name = os.environ.get("NODE_EDITOR_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """Set up root logging for the service process."""
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
