"""Tests for configuration loading and backend selection."""

import pytest
from pydantic import ValidationError

from stepwise.config import load_config
from stepwise.db import SQLModelRunRepository
from stepwise.persistence import (
    InMemoryRunRepository,
    SQLiteRunRepository,
    get_repository,
)


def test_defaults_without_config_file():
    config = load_config()
    assert config.database_url is None
    assert config.workflows_path is None
    assert config.log_level == "INFO"
    assert config.run_history_limit == 10


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite://runs.db
workflows_path: ./workflows
log_level: DEBUG
run_history_limit: 25
"""
    )
    monkeypatch.setenv("STEPWISE_CONFIG", str(config_path))

    config = load_config()
    assert config.database_url == "sqlite://runs.db"
    assert config.workflows_path == "./workflows"
    assert config.log_level == "DEBUG"
    assert config.run_history_limit == 25


def test_local_config_file_and_database_env_override(tmp_path, monkeypatch):
    (tmp_path / "stepwise.yaml").write_text("database_url: sqlite://local.db\n")
    assert load_config().database_url == "sqlite://local.db"

    monkeypatch.setenv("DATABASE_URL", "postgresql://db/runs")
    assert load_config().database_url == "postgresql://db/runs"
    monkeypatch.setenv("STEPWISE_DATABASE_URL", "sqlite://override.db")
    assert load_config().database_url == "sqlite://override.db"


def test_invalid_history_limit_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("run_history_limit: 0\n")
    with pytest.raises(ValidationError):
        load_config(str(path))


def test_get_repository_defaults_to_memory_and_caches():
    repo = get_repository()
    assert isinstance(repo, InMemoryRunRepository)
    assert get_repository() is repo


def test_get_repository_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{tmp_path / 'runs.db'}\n")
    monkeypatch.setenv("STEPWISE_CONFIG", str(config_path))

    repo = get_repository()
    assert isinstance(repo, SQLiteRunRepository)
    repo.close()


def test_get_repository_selects_sqlmodel_for_driver_urls(tmp_path):
    repo = get_repository(f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}")
    assert isinstance(repo, SQLModelRunRepository)


def test_get_repository_rejects_unknown_backend():
    with pytest.raises(ValueError):
        get_repository("mysql://localhost/runs")
