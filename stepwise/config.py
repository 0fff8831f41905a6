from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class StepwiseConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    workflows_path: Optional[str] = None
    log_level: str = "INFO"
    run_history_limit: int = Field(default=10, gt=0)


def load_config(path: Optional[str] = None) -> StepwiseConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWISE_CONFIG env
            variable or 'stepwise.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWISE_CONFIG", "stepwise.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwiseConfig(**data)
    else:
        config = StepwiseConfig()

    env_db_url = os.getenv("STEPWISE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
