"""Configuration models and YAML loader for the leaderboard."""

from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_TIMEZONE = "America/Los_Angeles"


class StatsApiConfig(BaseModel):
    """Third-party problem-stats API settings."""

    base_url: str = "https://leetcode-stats-api.herokuapp.com"
    timeout_s: float = Field(default=15.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay_s: float = Field(default=1.0, ge=0.0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.strip():
            msg = "base_url must not be empty"
            raise ValueError(msg)
        return v.strip().rstrip("/")


class FetchConfig(BaseModel):
    """Bounded fan-out when fetching stats for the whole roster."""

    batch_size: int = Field(default=3, ge=1, le=10)
    batch_delay_s: float = Field(default=0.5, ge=0.0)


class LeaderboardConfig(BaseModel):
    """Period tracking settings."""

    timezone: str = DEFAULT_TIMEZONE

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from e
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/leaderboard.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    stats_api: StatsApiConfig = Field(default_factory=StatsApiConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    leaderboard: LeaderboardConfig = Field(default_factory=LeaderboardConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
