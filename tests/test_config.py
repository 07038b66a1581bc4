"""Tests for config loading."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from meetgrid.config import Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("DATABASE_PATH", "MEETGRID_API_KEY", "TEST_ORIGIN"):
        monkeypatch.delenv(var, raising=False)


def write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_defaults_for_empty_file(tmp_path):
    config = load_config(write(tmp_path, ""))
    assert config == Config()
    assert config.availability.slot_minutes == 30
    assert config.availability.max_recommendations == 3
    assert config.calendar.sync_range_months == 2


def test_sections_are_read(tmp_path):
    config = load_config(write(tmp_path, """
availability:
  slot_minutes: 15
  timezone: "Asia/Seoul"
  active_hours_start: "08:00"
  min_available: 2
calendar:
  sync_range_months: 3
storage:
  database_path: "data/grid.db"
  bucket_timezone: "Asia/Seoul"
web:
  port: 9000
  allowed_origins: ["https://grid.example.com"]
"""))
    assert config.availability.slot_minutes == 15
    assert config.availability.active_hours_start == "08:00"
    assert config.availability.active_hours_end == "02:00"
    assert config.availability.min_available == 2
    assert config.calendar.sync_range_months == 3
    # All-day events fall back to the availability timezone
    assert config.calendar.default_timezone == "Asia/Seoul"
    assert config.storage.database_path == "data/grid.db"
    assert config.storage.bucket_timezone == "Asia/Seoul"
    assert config.web.port == 9000
    assert config.web.allowed_origins == ["https://grid.example.com"]


def test_env_vars_are_resolved(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_ORIGIN", "https://app.example.com")
    config = load_config(write(tmp_path, """
web:
  allowed_origins: ["${TEST_ORIGIN}"]
"""))
    assert config.web.allowed_origins == ["https://app.example.com"]


def test_unset_env_var_is_left_verbatim(tmp_path):
    config = load_config(write(tmp_path, 'calendar:\n  token_path: "${NOT_SET_ANYWHERE}"\n'))
    assert config.calendar.token_path == "${NOT_SET_ANYWHERE}"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/var/lib/meetgrid.db")
    monkeypatch.setenv("MEETGRID_API_KEY", "s3cret")
    config = load_config(write(tmp_path, "web:\n  api_key: from-file\n"))
    assert config.storage.database_path == "/var/lib/meetgrid.db"
    assert config.web.api_key == "s3cret"


def test_dotenv_beside_config(tmp_path):
    (tmp_path / ".env").write_text("MEETGRID_API_KEY=from-dotenv\n")
    with patch.dict(os.environ):
        config = load_config(write(tmp_path, ""))
    assert config.web.api_key == "from-dotenv"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_rejects_bad_slot_size(tmp_path):
    with pytest.raises(ValueError):
        load_config(write(tmp_path, "availability:\n  slot_minutes: 0\n"))


def test_rejects_bad_port(tmp_path):
    with pytest.raises(ValueError, match="Invalid web port"):
        load_config(write(tmp_path, "web:\n  port: 70000\n"))


def test_unset_api_key_placeholder_disables_auth(tmp_path):
    config = load_config(write(tmp_path, 'web:\n  api_key: "${MEETGRID_API_KEY}"\n'))
    assert config.web.api_key == ""
