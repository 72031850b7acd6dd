"""Pydantic models describing lists, owner settings and global controls."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, field_validator, model_validator

from ..errors import InvalidSchedule


class ProviderKind(str, Enum):
    """Catalog providers a list can be sourced from."""

    TRAKT = "trakt"
    TRAKT_CHART = "trakt_chart"
    MDBLIST = "mdblist"
    STEVENLU = "stevenlu"
    ANILIST = "anilist"

    @property
    def credential_kind(self) -> "ProviderKind":
        # Trakt charts authenticate with the same client id as Trakt lists.
        if self is ProviderKind.TRAKT_CHART:
            return ProviderKind.TRAKT
        return self


class TriggerKind(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


def build_cron_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a five-field crontab expression in ``timezone``.

    Raises :class:`InvalidSchedule` for bad syntax or an unknown timezone so the
    error surfaces when the schedule is installed rather than when it fires.
    """

    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidSchedule(expression, f"unknown timezone {timezone!r}") from exc
    try:
        return CronTrigger.from_crontab(expression.strip(), timezone=tz)
    except ValueError as exc:
        raise InvalidSchedule(expression, str(exc)) from exc


class MediaListConfig(BaseModel):
    """A user-configured source list. Read-only from the pipeline's perspective."""

    id: int = Field(ge=1)
    name: str = ""
    provider: ProviderKind
    url: str
    display_url: str | None = None
    enabled: bool = True
    max_items: int = Field(default=50, ge=1, le=50)
    # Deprecated in favour of GlobalConfig.automatic_processing; still honoured.
    schedule: str | None = None
    owner_id: int = 1

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("url cannot be empty")
        return value

    @field_validator("schedule", mode="before")
    @classmethod
    def _normalise_schedule(cls, value: Any) -> str | None:
        # Cron syntax is checked when the timer is installed, in the configured timezone.
        if value in (None, ""):
            return None
        return str(value).strip() or None

    @property
    def label(self) -> str:
        return self.name or f"list-{self.id}"


class ProviderConfig(BaseModel):
    """Credential bundle for one provider (API key, or client id for Trakt)."""

    api_key: str

    @field_validator("api_key")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("api_key cannot be empty")
        return value


class DownstreamConfig(BaseModel):
    """Connection details for the media-request service."""

    url: str
    api_key: str
    user_id: int = Field(ge=1)

    @field_validator("url")
    @classmethod
    def _normalise_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("downstream url must start with http:// or https://")
        return value


class OwnerSettings(BaseModel):
    """Per-owner settings consumed (never mutated) by the pipeline."""

    downstream: DownstreamConfig | None = None
    providers: dict[ProviderKind, ProviderConfig] = Field(default_factory=dict)


class AutomaticProcessing(BaseModel):
    enabled: bool = False
    schedule: str = "0 */6 * * *"

    @field_validator("schedule")
    @classmethod
    def _validate_schedule(cls, value: str) -> str:
        value = value.strip()
        build_cron_trigger(value)
        return value


class GlobalConfig(BaseModel):
    """Global controls shared across lists."""

    timezone: str = "UTC"
    automatic_processing: AutomaticProcessing = Field(default_factory=AutomaticProcessing)
    batch_fetch_delay: float = Field(default=2.0, ge=0.0)
    http_timeout: float = Field(default=30.0, gt=0.0)
    thread_pool_workers: int = Field(default=4, ge=1)
    database_path: Path = Field(default=Path("data/listsync.db"))
    default_owner_id: int = 1

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("database_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _check_global_schedule(self) -> "GlobalConfig":
        if self.automatic_processing.enabled:
            build_cron_trigger(self.automatic_processing.schedule, self.timezone)
        return self

    def resolved_database_path(self, base_dir: Path) -> Path:
        if not self.database_path.is_absolute():
            return (base_dir / self.database_path).resolve()
        return self.database_path


__all__ = [
    "AutomaticProcessing",
    "DownstreamConfig",
    "GlobalConfig",
    "MediaListConfig",
    "OwnerSettings",
    "ProviderConfig",
    "ProviderKind",
    "TriggerKind",
    "build_cron_trigger",
]
