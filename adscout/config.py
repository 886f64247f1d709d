from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_ANALYSIS_CONCURRENCY,
    DEFAULT_ANALYSIS_TIMEOUT_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_MAX_COMPETITORS,
    DEFAULT_MAX_VIDEOS_TO_ANALYZE,
    DEFAULT_MAX_VIDEOS_TO_DOWNLOAD,
    DEFAULT_STEP_TIMEOUT_SECONDS,
)


class FunctionsConfig(BaseModel):
    """Where the remote collaborator functions are hosted."""

    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS


class PipelineConfig(BaseModel):
    """Tuning knobs for the ad intelligence pipeline."""

    max_competitors: int = Field(default=DEFAULT_MAX_COMPETITORS, ge=1)
    max_videos_to_download: int = Field(default=DEFAULT_MAX_VIDEOS_TO_DOWNLOAD, ge=0)
    max_videos_to_analyze: int = Field(default=DEFAULT_MAX_VIDEOS_TO_ANALYZE, ge=0)
    analysis_concurrency: int = Field(default=DEFAULT_ANALYSIS_CONCURRENCY, ge=1)
    analysis_timeout_seconds: float = Field(
        default=DEFAULT_ANALYSIS_TIMEOUT_SECONDS, gt=0
    )
    step_timeout_seconds: float = Field(default=DEFAULT_STEP_TIMEOUT_SECONDS, gt=0)
    disabled_steps: list[str] = Field(default_factory=list)


class AdScoutConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    functions: FunctionsConfig = Field(default_factory=FunctionsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


def load_config(path: Optional[str] = None) -> AdScoutConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ADSCOUT_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("ADSCOUT_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AdScoutConfig(**data)
    else:
        config = AdScoutConfig()

    env_db_url = os.getenv("ADSCOUT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("ADSCOUT_FUNCTIONS_URL"):
        config.functions.base_url = os.environ["ADSCOUT_FUNCTIONS_URL"]
    if os.getenv("ADSCOUT_FUNCTIONS_KEY"):
        config.functions.api_key = os.environ["ADSCOUT_FUNCTIONS_KEY"]
    return config
