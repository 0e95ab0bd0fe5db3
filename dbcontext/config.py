"""Configuration management for dbcontext."""

import os
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


def _find_env_file() -> Optional[str]:
    """Find .env file in multiple locations.

    Search order:
    1. Current working directory
    2. ~/.dbcontext/.env
    """
    if os.path.exists(".env"):
        return ".env"

    user_env = Path.home() / ".dbcontext" / ".env"
    if user_env.exists():
        return str(user_env)

    return None


class Settings(BaseSettings):
    """Runtime settings loaded from DBCONTEXT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DBCONTEXT_",
        env_file=_find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_dir: str = Field(
        default=".dbcontext",
        description="Root directory the context tree is written under"
    )
    sample_row_limit: int = Field(
        default=10,
        description="Rows fetched per table for __sample.xml files"
    )

    # Deadlines, in seconds
    connect_timeout: float = Field(
        default=5,
        description="Connectivity checks and connection opening"
    )
    discovery_timeout: float = Field(
        default=60,
        description="Catalog-level discovery (schemas, tables, databases)"
    )
    table_detail_timeout: float = Field(
        default=120,
        description="Table detail discovery (columns and sample rows)"
    )
    column_timeout: float = Field(
        default=120,
        description="Profiling a single column"
    )
    sso_timeout: float = Field(
        default=120,
        description="Connection allowance for external-browser SSO logins"
    )

    progress_interval: float = Field(
        default=3,
        description="Seconds between progress messages during discovery"
    )
    log_level: str = Field(
        default="WARNING",
        description="Logging level for the dbcontext logger"
    )


# Global settings instance
settings = Settings()
