"""Configuration models and helpers for the tracker."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError


class GeneralConfig(BaseModel):
    data_dir: Optional[Path] = None
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    collect_interval_secs: int = Field(default=60, ge=1)
    time_block_division: int = Field(default=4)
    idle_threshold_secs: int = Field(default=300, ge=1)
    idle_window_secs: int = Field(default=900, ge=1)
    idle_suppress_secs: int = Field(default=450, ge=1)
    skip_private_browsing: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("time_block_division")
    @classmethod
    def _divides_hour(cls, value: int) -> int:
        if value <= 0 or 60 % value:
            raise ValueError("time_block_division must evenly divide 60")
        return value


class TogglConfig(BaseModel):
    api_token: str
    workspace_id: int
    merge_lookback_minutes: int = Field(default=60, ge=1)
    merge_gap_minutes: int = Field(default=15, ge=0)
    use_similarity: bool = False
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class OpenAIConfig(BaseModel):
    api_key: str
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    base_url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class GoogleCalendarConfig(BaseModel):
    client_id: str
    client_secret: str
    refresh_token: str
    calendar_ids: str = "primary"

    model_config = ConfigDict(extra="forbid")

    @property
    def calendar_id_list(self) -> list[str]:
        return [part.strip() for part in self.calendar_ids.split(",") if part.strip()]


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    toggl: TogglConfig
    openai: Optional[OpenAIConfig] = None
    google_calendar: Optional[GoogleCalendarConfig] = None

    model_config = ConfigDict(extra="forbid")


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration consumed by the sampler, scheduler and reconciler."""

    collect_interval: timedelta = timedelta(seconds=60)
    time_block_division: int = 4
    idle_threshold: timedelta = timedelta(minutes=5)
    idle_window: timedelta = timedelta(seconds=900)
    idle_suppress: timedelta = timedelta(seconds=450)
    confidence_threshold: float = 0.5
    skip_private_browsing: bool = True
    merge_lookback: timedelta = timedelta(hours=1)
    merge_gap: timedelta = timedelta(minutes=15)
    similarity_threshold: float = 0.85

    @property
    def block_length(self) -> timedelta:
        return timedelta(minutes=60 // self.time_block_division)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TrackerSettings":
        general = config.general
        return cls(
            collect_interval=timedelta(seconds=general.collect_interval_secs),
            time_block_division=general.time_block_division,
            idle_threshold=timedelta(seconds=general.idle_threshold_secs),
            idle_window=timedelta(seconds=general.idle_window_secs),
            idle_suppress=timedelta(seconds=general.idle_suppress_secs),
            confidence_threshold=general.confidence_threshold,
            skip_private_browsing=general.skip_private_browsing,
            merge_lookback=timedelta(minutes=config.toggl.merge_lookback_minutes),
            merge_gap=timedelta(minutes=config.toggl.merge_gap_minutes),
            similarity_threshold=config.toggl.similarity_threshold,
        )


def load_config(path: Path) -> AppConfig:
    """Read and validate the TOML configuration file."""
    try:
        with Path(path).open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Config file not found: {path} (run `autotrack init-config`)"
        ) from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Failed to read config file {path}: {exc}") from exc

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{exc}") from exc


SAMPLE_CONFIG = """\
[general]
# data_dir = "~/.local/share/autotrack"
confidence_threshold = 0.5
collect_interval_secs = 60
# Blocks per hour; must divide 60 (4 = every 15 minutes).
time_block_division = 4
idle_threshold_secs = 300
idle_window_secs = 900
idle_suppress_secs = 450
skip_private_browsing = true

[toggl]
api_token = "your_toggl_api_token"
workspace_id = 0
merge_lookback_minutes = 60
merge_gap_minutes = 15
use_similarity = false
similarity_threshold = 0.85

# Remove this section to use the offline keyword classifier.
[openai]
api_key = "your_openai_api_key"
model = "gpt-4o-mini"
embedding_model = "text-embedding-3-small"

# [google_calendar]
# client_id = ""
# client_secret = ""
# refresh_token = ""
# calendar_ids = "primary"
"""


def render_sample_config() -> str:
    return SAMPLE_CONFIG
