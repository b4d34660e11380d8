"""Tests for structured logging setup."""

import io
import json
from collections.abc import Iterator

import pytest
import structlog

from registerdata.config import LoggingConfig
from registerdata.utils.logging import (
    configure_from_config,
    configure_logging,
    get_logger,
    log_context,
)


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Restore structlog defaults after each test."""
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output_with_context(self) -> None:
        """Test JSON events carry bound context."""
        stream = io.StringIO()
        configure_logging(level="INFO", json_output=True, stream=stream)
        log = get_logger("tests.json")

        with log_context(registry="bef", period="2020"):
            log.info("Loaded registry", rows=3)

        event = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert event["event"] == "Loaded registry"
        assert event["registry"] == "bef"
        assert event["period"] == "2020"
        assert event["rows"] == 3
        assert event["level"] == "info"

    def test_level_filtering(self) -> None:
        """Test events below the configured level are dropped."""
        stream = io.StringIO()
        configure_logging(level="WARNING", json_output=True, stream=stream)
        log = get_logger("tests.level")

        log.info("Hidden")
        log.warning("Shown")

        output = stream.getvalue()
        assert "Hidden" not in output
        assert "Shown" in output

    def test_configure_from_config(self) -> None:
        """Test the level and renderer of the logging section are applied."""
        stream = io.StringIO()
        configure_from_config(
            LoggingConfig(level="error", json_output=True), stream=stream
        )
        log = get_logger("tests.config")

        log.warning("Hidden")
        log.error("Shown", registry="lpr_adm")

        assert structlog.is_configured()
        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "Shown"
        assert event["level"] == "error"
        assert event["registry"] == "lpr_adm"
