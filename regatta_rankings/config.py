"""
Runtime settings for the rankings service.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)

    database_url: str = Field(default="sqlite:///./regatta_rankings.db")

    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None, description="Rotating log file path, disabled when unset")

    # Category abbreviations matching this pattern are masters/veteran bands.
    # Any non-letter, or a trailing m/w/x gender letter, ends the band name.
    masters_category_pattern: str = Field(default=r"(?i)(?:^|[^a-z])(masters?|vet(eran)?s?|mst)(?:[^a-z]|[mwx]?$)")

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


@lru_cache()
def get_settings() -> Settings:
    return Settings()
