"""Shared fixtures: every test starts without cached singletons or env config."""

import pytest

from stepwise.persistence import reset_repository
from stepwise.registry import reset_registry


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    for var in ("STEPWISE_CONFIG", "STEPWISE_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_repository()
    reset_registry()
    yield
    reset_repository()
    reset_registry()
