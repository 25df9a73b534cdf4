"""Configuration for the workflow engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Pydantic-settings supports overriding the env file in tests via
`EngineSettings(_env_file=path_to_env)`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CachePolicy = Literal["none", "mtime"]


class EngineSettings(BaseSettings):
    """Settings for loading definitions and persisting client state.

    Environment variables:
    - WORKFLOW_DATA_ROOT
    - WORKFLOW_CLIENT_STATE_PATH
    - WORKFLOW_ENV                    (development | production)
    - WORKFLOW_CACHE_POLICY           (none | mtime)
    - WORKFLOW_CACHE_TTL_SECONDS
    - WORKFLOW_ALLOW_REGION_FALLBACK
    - LOG_LEVEL
    """

    data_root: Path = Field(
        default=Path("data"),
        validation_alias="WORKFLOW_DATA_ROOT",
        description="Directory containing the workflows/ and tasks/ trees",
    )
    client_state_path: Path = Field(
        default=Path("data/client_state"),
        validation_alias="WORKFLOW_CLIENT_STATE_PATH",
        description="Directory where one JSON record per client is persisted",
    )

    environment: Literal["development", "production"] = Field(
        default="development",
        validation_alias="WORKFLOW_ENV",
        description="Selects the default cache policy",
    )
    cache_policy: CachePolicy | None = Field(
        default=None,
        validation_alias="WORKFLOW_CACHE_POLICY",
        description=(
            "'none' re-reads definition files on every load; 'mtime' reuses parsed "
            "definitions until the file modification time changes. Defaults to 'none' in "
            "development and 'mtime' in production."
        ),
    )
    cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        validation_alias="WORKFLOW_CACHE_TTL_SECONDS",
        description="Maximum age of a cached definition (0 disables the TTL)",
    )

    allow_region_fallback: bool = Field(
        default=False,
        validation_alias="WORKFLOW_ALLOW_REGION_FALLBACK",
        description=(
            "If true, workflow selection falls back to a category-only match when no "
            "workflow lists the requested region."
        ),
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _default_cache_policy(self) -> EngineSettings:
        if self.cache_policy is None:
            self.cache_policy = "mtime" if self.environment == "production" else "none"
        return self

    @property
    def workflows_dir(self) -> Path:
        return self.data_root / "workflows"

    @property
    def tasks_dir(self) -> Path:
        return self.data_root / "tasks"
