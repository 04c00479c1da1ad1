"""Tests for settings loading."""
import pytest
from pydantic import ValidationError

from together.config import AppSettings, StorageSettings, load_settings


def test_missing_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml")
    assert settings == AppSettings()
    assert settings.server.port == 5000
    assert settings.chat.default_page_size == 30


def test_yaml_overrides_sections(tmp_path):
    path = tmp_path / "together.settings.yaml"
    path.write_text(
        "server:\n"
        "  port: 8080\n"
        "  allowed_origins: ['http://localhost:3000']\n"
        "logging:\n"
        "  level: DEBUG\n"
        "chat:\n"
        "  max_page_size: 50\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.server.port == 8080
    assert settings.server.allowed_origins == ["http://localhost:3000"]
    assert settings.logging.level == "debug"
    assert settings.chat.max_page_size == 50
    assert settings.auth.bcrypt_rounds == 10


def test_unknown_log_level_rejected(tmp_path):
    path = tmp_path / "together.settings.yaml"
    path.write_text("logging:\n  level: loud\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_settings(path)


def test_db_path_resolves_against_data_dir(tmp_path):
    storage = StorageSettings(data_dir=str(tmp_path / "data"))
    assert storage.db_path("users.duckdb") == str(tmp_path / "data" / "users.duckdb")
    assert (tmp_path / "data").is_dir()
    assert storage.db_path(":memory:") == ":memory:"
