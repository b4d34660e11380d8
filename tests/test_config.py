"""Tests for configuration system."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from registerdata.config import (
    CacheConfig,
    ConcurrencyConfig,
    DateFormatConfig,
    JoinConfig,
    LoggingConfig,
    PeriodConfig,
    RegistryConfig,
    SourceConfig,
    load_config,
)


class TestCacheConfig:
    """Tests for CacheConfig defaults and bounds."""

    def test_defaults(self) -> None:
        """Test default cache bounds."""
        config = CacheConfig()
        assert config.max_raw_entries == 20
        assert config.max_filtered_entries == 20
        assert config.eviction_fraction == 0.25
        assert config.lock_timeout_s == 30.0
        assert config.fingerprint_prefix == 5

    def test_invalid_eviction_fraction(self) -> None:
        """Test that an eviction fraction above 1 is rejected."""
        with pytest.raises(PydanticValidationError):
            CacheConfig(eviction_fraction=1.5)

    def test_frozen(self) -> None:
        """Test that config objects are immutable."""
        config = CacheConfig()
        with pytest.raises(PydanticValidationError):
            config.max_raw_entries = 3  # type: ignore[misc]


class TestConcurrencyConfig:
    """Tests for ConcurrencyConfig."""

    def test_defaults_fall_back_to_cpu_count(self) -> None:
        """Test that unset limits resolve to a positive number."""
        config = ConcurrencyConfig()
        assert config.workers >= 1
        assert config.async_tasks >= 1

    def test_explicit_limits(self) -> None:
        """Test explicit limits are used as given."""
        config = ConcurrencyConfig(max_workers=3, max_async_tasks=2)
        assert config.workers == 3
        assert config.async_tasks == 2


class TestDateFormatConfig:
    """Tests for DateFormatConfig."""

    def test_default_formats_start_with_iso(self) -> None:
        """Test ISO dates are tried first."""
        config = DateFormatConfig()
        assert config.formats[0] == "%Y-%m-%d"
        assert "%Y%m%d" in config.formats
        assert config.enable_format_detection

    def test_format_without_directive_rejected(self) -> None:
        """Test that a literal format string is rejected."""
        with pytest.raises(PydanticValidationError, match="no directives"):
            DateFormatConfig(formats=("YYYY-MM-DD",))


class TestPeriodAndLoggingConfig:
    """Tests for small config sections."""

    def test_extensions_normalized(self) -> None:
        """Test extensions are lower-cased and dotted."""
        config = PeriodConfig(file_extensions=("CSV", ".Parquet"))
        assert config.file_extensions == (".csv", ".parquet")

    def test_log_level_normalized(self) -> None:
        """Test log level is upper-cased."""
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_log_level(self) -> None:
        """Test unknown log level is rejected."""
        with pytest.raises(PydanticValidationError, match="Unknown log level"):
            LoggingConfig(level="chatty")


class TestRegistryConfig:
    """Tests for the root configuration."""

    def test_resolve_relative_location(self) -> None:
        """Test source locations are resolved against data_root."""
        config = RegistryConfig(
            data_root=Path("/data"),
            sources={"bef": SourceConfig(location=Path("bef"))},
        )
        assert config.resolve("bef") == Path("/data/bef")

    def test_resolve_absolute_location(self) -> None:
        """Test absolute locations are kept."""
        config = RegistryConfig(
            data_root=Path("/data"),
            sources={"bef": SourceConfig(location=Path("/other/bef"))},
        )
        assert config.resolve("bef") == Path("/other/bef")

    def test_resolve_unknown_source(self) -> None:
        """Test resolving an unconfigured source raises."""
        with pytest.raises(ValueError, match="not configured"):
            RegistryConfig().resolve("bef")

    def test_join_to_unknown_source(self) -> None:
        """Test joins must reference configured sources."""
        with pytest.raises(PydanticValidationError, match="unknown source"):
            RegistryConfig(
                sources={"lpr_adm": SourceConfig(location=Path("lpr_adm"))},
                joins=(JoinConfig(child="lpr_diag", parent="lpr_adm"),),
            )


class TestLoadConfig:
    """Tests for YAML config loading."""

    def test_load_minimal_config(self, tmp_path: Path) -> None:
        """Test an empty config yields all defaults."""
        config_path = tmp_path / "registry.yaml"
        config_path.write_text("{}\n", encoding="utf-8")

        config = load_config(config_path)

        assert config.sources == {}
        assert config.cache.max_raw_entries == 20

    def test_load_sources_and_joins(self, tmp_path: Path) -> None:
        """Test sources given as strings or mappings, and joins."""
        config_path = tmp_path / "registry.yaml"
        config_path.write_text(
            """
data_root: /registers
sources:
  lpr_adm: lpr/adm
  lpr_diag:
    location: lpr/diag
    key_column: RECNUM
joins:
  - child: lpr_diag
    parent: lpr_adm
cache:
  max_raw_entries: 8
""",
            encoding="utf-8",
        )

        config = load_config(config_path)

        assert config.resolve("lpr_adm") == Path("/registers/lpr/adm")
        assert config.sources["lpr_diag"].key_column == "RECNUM"
        assert config.joins[0].parent == "lpr_adm"
        assert config.cache.max_raw_entries == 8

    def test_env_interpolation(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test ${VAR} and ${VAR:default} interpolation."""
        monkeypatch.setenv("REGISTER_ROOT", "/secure/registers")
        monkeypatch.delenv("REGISTER_LOG_LEVEL", raising=False)
        config_path = tmp_path / "registry.yaml"
        config_path.write_text(
            """
data_root: ${REGISTER_ROOT}
logging:
  level: ${REGISTER_LOG_LEVEL:warning}
""",
            encoding="utf-8",
        )

        config = load_config(config_path)

        assert config.data_root == Path("/secure/registers")
        assert config.logging.level == "WARNING"

    def test_base_config_merge(self, tmp_path: Path) -> None:
        """Test base.yaml next to the config is deep-merged."""
        (tmp_path / "base.yaml").write_text(
            """
cache:
  max_raw_entries: 4
  max_filtered_entries: 6
""",
            encoding="utf-8",
        )
        config_path = tmp_path / "registry.yaml"
        config_path.write_text("cache:\n  max_raw_entries: 10\n", encoding="utf-8")

        config = load_config(config_path)

        assert config.cache.max_raw_entries == 10
        assert config.cache.max_filtered_entries == 6

    def test_explicit_base_path(self, tmp_path: Path) -> None:
        """Test an explicit base file is used instead of base.yaml."""
        base_path = tmp_path / "shared.yaml"
        base_path.write_text("concurrency:\n  max_workers: 2\n", encoding="utf-8")
        config_path = tmp_path / "registry.yaml"
        config_path.write_text("{}\n", encoding="utf-8")

        config = load_config(config_path, base_path=base_path)

        assert config.concurrency.workers == 2
