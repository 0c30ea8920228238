"""Tests for centralized logging configuration."""

import logging
import sys
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, cast

import pytest

from finloop.logging.config import LoggingConfig, get_log_config_summary, setup_logging


def _force_config(**overrides: Any) -> LoggingConfig:
    """Return a LoggingConfig that forces handler replacement."""
    return LoggingConfig(force_reconfigure=True, **overrides)


class TestSetupLogging:
    """Tests for setup_logging handler configuration."""

    @pytest.fixture(autouse=True)
    def _reset_root_logger(self) -> Generator[None, Any, None]:
        """Remove handlers added during each test to avoid leaking state."""
        root = logging.getLogger()
        original_handlers = list(root.handlers)
        original_level = root.level
        yield
        for handler in root.handlers:
            if handler not in original_handlers:
                handler.close()
        root.handlers = original_handlers
        root.setLevel(original_level)

    @pytest.mark.unit
    def test_console_handler_uses_stderr(self) -> None:
        """Console output must stay off stdout, which carries JSON output."""
        setup_logging(config=_force_config(), cli_mode=True)
        root = logging.getLogger()

        stream_handlers = [
            h
            for h in root.handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]
        assert stream_handlers, "Expected at least one StreamHandler"
        for h in stream_handlers:
            stream: object = getattr(cast(Any, h), "stream", None)
            assert stream is sys.stderr

    @pytest.mark.unit
    def test_verbose_overrides_level(self) -> None:
        setup_logging(config=_force_config(level="WARNING"), verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.unit
    def test_configured_level(self) -> None:
        setup_logging(config=_force_config(level="WARNING"))
        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.unit
    def test_http_loggers_quieted(self) -> None:
        setup_logging(config=_force_config(), verbose=True)
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING

    @pytest.mark.unit
    def test_file_logging(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "finloop.log"

        setup_logging(config=_force_config(log_to_file=True, log_file_path=log_file))

        file_handlers = [
            h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert log_file.parent.is_dir()

    @pytest.mark.unit
    def test_summary_reports_handlers(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        setup_logging(config=_force_config())

        summary = get_log_config_summary()

        assert "StreamHandler" in summary["handlers"]
        assert summary["log_to_file"] is False
