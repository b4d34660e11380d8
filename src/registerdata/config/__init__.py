"""
Configuration management with typed Pydantic models.

Provides cache, concurrency, date-format and source settings and
environment-aware YAML loading.
"""

from registerdata.config.loader import load_config
from registerdata.config.settings import (
    CacheConfig,
    ConcurrencyConfig,
    DateFormatConfig,
    JoinConfig,
    LoggingConfig,
    PeriodConfig,
    RegistryConfig,
    SourceConfig,
)

__all__ = [
    "CacheConfig",
    "ConcurrencyConfig",
    "DateFormatConfig",
    "JoinConfig",
    "LoggingConfig",
    "PeriodConfig",
    "RegistryConfig",
    "SourceConfig",
    "load_config",
]
