"""
Typed configuration models using Pydantic.

All tunables of the library live here: cache bounds, concurrency limits,
date parsing formats, period-file discovery and source locations.
"""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",  # ISO
    "%d-%m-%Y",  # European dash
    "%m/%d/%Y",  # US slash
    "%d/%m/%Y",  # UK slash
    "%d.%m.%Y",  # dotted
    "%Y%m%d",  # compact
    "%d %b %Y",  # 15 Jan 2023
    "%d %B %Y",  # 15 January 2023
)


class CacheConfig(BaseModel):
    """Bounds and locking for the manager's in-memory caches."""

    model_config = ConfigDict(frozen=True)

    max_raw_entries: int = Field(
        default=20, ge=1, description="Raw batch cache size (entries = sources)"
    )
    max_filtered_entries: int = Field(
        default=20, ge=1, description="Joined result cache size"
    )
    eviction_fraction: float = Field(
        default=0.25,
        gt=0.0,
        le=1.0,
        description="Share of entries dropped when a cache overflows",
    )
    lock_timeout_s: float | None = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for a cache lock (None waits forever)",
    )
    fingerprint_prefix: int = Field(
        default=5, ge=1, description="Number of smallest ids in a filter fingerprint"
    )


class ConcurrencyConfig(BaseModel):
    """Worker limits for threaded and async loading."""

    model_config = ConfigDict(frozen=True)

    max_workers: int | None = Field(
        default=None, ge=1, description="Thread pool size (None = CPU count)"
    )
    max_async_tasks: int | None = Field(
        default=None, ge=1, description="Concurrent async loads (None = CPU count)"
    )

    @property
    def workers(self) -> int:
        """Effective thread pool size."""
        return self.max_workers or os.cpu_count() or 1

    @property
    def async_tasks(self) -> int:
        """Effective async concurrency limit."""
        return self.max_async_tasks or os.cpu_count() or 1


class DateFormatConfig(BaseModel):
    """Date parsing formats tried when adapting string date columns."""

    model_config = ConfigDict(frozen=True)

    formats: tuple[str, ...] = Field(
        default=DEFAULT_DATE_FORMATS,
        description="strftime formats in priority order; first match wins",
    )
    enable_format_detection: bool = Field(
        default=True,
        description="Guess a format from the values when no configured format fits",
    )

    @field_validator("formats")
    @classmethod
    def validate_formats(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure every format carries at least one directive."""
        for fmt in v:
            if "%" not in fmt:
                msg = f"Date format has no directives: {fmt!r}"
                raise ValueError(msg)
        return v


class PeriodConfig(BaseModel):
    """Period file discovery configuration."""

    model_config = ConfigDict(frozen=True)

    file_extensions: tuple[str, ...] = Field(
        default=(".parquet", ".feather", ".csv"),
        description="File extensions considered when scanning for period files",
    )

    @field_validator("file_extensions")
    @classmethod
    def normalize_extensions(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lower-case extensions and ensure the leading dot."""
        return tuple(e.lower() if e.startswith(".") else f".{e.lower()}" for e in v)


class SourceConfig(BaseModel):
    """Location of one registry source."""

    model_config = ConfigDict(frozen=True)

    location: Path = Field(description="File or directory, relative to data_root")
    key_column: str | None = Field(
        default=None, description="Override of the schema's join key column"
    )


class JoinConfig(BaseModel):
    """Declared dependency of a secondary-keyed source on its parent."""

    model_config = ConfigDict(frozen=True)

    child: str = Field(description="Source keyed by a secondary key")
    parent: str = Field(description="Source mapping that key to identifiers")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_output: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Ensure the level is a known logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unknown log level: {v!r}"
            raise ValueError(msg)
        return level


class RegistryConfig(BaseModel):
    """Complete library configuration.

    Source locations are relative to data_root; use resolve() to get the
    path handed to a loader.
    """

    model_config = ConfigDict(frozen=True)

    data_root: Path = Field(
        default=Path("./data"), description="Root directory for all registry files"
    )
    sources: dict[str, SourceConfig] = Field(default_factory=dict)
    joins: tuple[JoinConfig, ...] = Field(default=())
    cache: CacheConfig = Field(default_factory=CacheConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    dates: DateFormatConfig = Field(default_factory=DateFormatConfig)
    periods: PeriodConfig = Field(default_factory=PeriodConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_joins(self) -> "RegistryConfig":
        """Ensure joins reference configured sources."""
        for join in self.joins:
            for name in (join.child, join.parent):
                if self.sources and name not in self.sources:
                    msg = f"Join references unknown source: {name!r}"
                    raise ValueError(msg)
        return self

    def resolve(self, name: str) -> Path:
        """Resolve a source location against data_root."""
        source = self.sources.get(name)
        if source is None:
            msg = f"Source '{name}' is not configured"
            raise ValueError(msg)
        if source.location.is_absolute():
            return source.location
        return self.data_root / source.location
