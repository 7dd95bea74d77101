"""
Centralized settings for taskspine.

Manifesto:
    One validated, cached settings object replaces scattered keyword
    arguments and ad-hoc environment lookups.  Every component built by
    :mod:`taskspine.factory` reads from :class:`TaskSpineSettings`.

All fields can be set via ``TASKSPINE_*`` environment variables (e.g.
``TASKSPINE_STORAGE_DSN=sqlite:///tasks.db``) or through a ``.env`` file.

Tags:
    taskspine, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaskSpineSettings(BaseSettings):
    """taskspine centralized configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TASKSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scheduler ────────────────────────────────────────────────
    timezone: str = Field(default="UTC", description="Scheduler timezone (IANA name)")
    max_clock_drift_seconds: float = Field(default=1.0, gt=0)

    # ── Storage ──────────────────────────────────────────────────
    storage_dsn: str = Field(default="memory://first_in_first_out")

    # ── Locks ────────────────────────────────────────────────────
    lock_dsn: str = Field(default="memory://", description="memory:// or sqlite:///path.db")
    lock_ttl_seconds: int = Field(default=300, gt=0)

    # ── Worker ───────────────────────────────────────────────────
    sleep_duration_delay: int = Field(default=1, ge=0)
    task_limit: int | None = Field(default=None, gt=0)
    time_limit_seconds: int | None = Field(default=None, gt=0)
    failure_limit: int | None = Field(default=None, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


@dataclass
class WorkerOptions:
    """Per-execution options for :meth:`Worker.execute`."""

    sleep_duration_delay: int = 1


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: TaskSpineSettings | None = None


def get_settings(_force_reload: bool = False) -> TaskSpineSettings:
    """Load, validate, and cache a :class:`TaskSpineSettings` instance."""
    global _settings_cache
    if _settings_cache is None or _force_reload:
        _settings_cache = TaskSpineSettings()
    return _settings_cache


__all__ = ["TaskSpineSettings", "WorkerOptions", "get_settings"]
