"""Environment-driven settings (APIDECL_* variables, optional .env file)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APIDECL_", env_file=".env", case_sensitive=False)

    # Publishing
    reference_bucket: str = "references.apidecl.local"
    aws_region: str = "us-west-2"

    # Local reference history
    store_path: Path = Path(".apidecl") / "references.db"

    # Observability
    log_level: str = "INFO"
    log_format: str = "text"


@lru_cache
def get_settings() -> Settings:
    return Settings()
