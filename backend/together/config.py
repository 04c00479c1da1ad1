"""Together application configuration.

Loads settings from ``together.settings.yaml`` in the working directory.
Every section has defaults, so a missing file yields a usable configuration.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("together.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 5000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class AuthSettings(BaseModel):
    token_expire_minutes: int = Field(default=60 * 24 * 14, ge=1)
    bcrypt_rounds:        int = Field(default=10, ge=4, le=31)


class ChatSettings(BaseModel):
    default_page_size: int = Field(default=30, ge=1)
    max_page_size:     int = Field(default=100, ge=1)
    search_min_length: int = Field(default=3, ge=1)


class StorageSettings(BaseModel):
    """Where each DuckDB-backed service keeps its data."""
    data_dir:         str = "./data"
    users_db:         str = "users.duckdb"
    conversations_db: str = "conversations.duckdb"
    todos_db:         str = "todos.duckdb"
    events_db:        str = "events.duckdb"
    schedules_db:     str = "schedules.duckdb"
    files_db:         str = "file_metadata.duckdb"
    upload_dir:       str = "./uploads"
    max_image_bytes:  int = Field(default=5 * 1024 * 1024, ge=1)

    def db_path(self, name: str) -> str:
        """Resolve a database file name against ``data_dir``.

        ``:memory:`` is passed through unchanged so tests can run without disk.
        """
        if name == ":memory:":
            return name
        directory = Path(self.data_dir)
        directory.mkdir(parents=True, exist_ok=True)
        return str(directory / name)


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    auth:    AuthSettings    = Field(default_factory=AuthSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML into a single *AppSettings* object."""
    settings_data = _load_yaml(path or SETTINGS_FILE)
    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, data_dir=%s, upload_dir=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.storage.data_dir,
        app_settings.storage.upload_dir,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: AppSettings) -> None:
    """Replace the process-wide settings (used by tests)."""
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
