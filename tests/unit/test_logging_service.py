"""Tests for logging service configuration."""

import logging
import tempfile
from pathlib import Path

from marketplace.config import settings
from marketplace.services.logging import get_log_level, setup_server_logging


class TestServerLogging:
    """Test server logging configuration."""

    def setup_method(self):
        """Save original handlers before each test."""
        self.root_logger = logging.getLogger()
        self.original_handlers = self.root_logger.handlers.copy()
        self.original_level = self.root_logger.level

    def teardown_method(self):
        """Restore original handlers after each test."""
        for handler in self.root_logger.handlers[:]:
            handler.close()
            self.root_logger.removeHandler(handler)
        for handler in self.original_handlers:
            self.root_logger.addHandler(handler)
        self.root_logger.setLevel(self.original_level)

    def test_creates_log_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "nested" / "server.log"

            setup_server_logging(str(log_file))

            assert log_file.parent.exists()

    def test_creates_stdout_and_file_handlers(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            setup_server_logging(str(Path(temp_dir) / "server.log"))

            kinds = {type(handler) for handler in self.root_logger.handlers}
            assert len(self.root_logger.handlers) == 2
            assert logging.FileHandler in kinds
            assert logging.StreamHandler in kinds

    def test_writes_to_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "server.log"
            setup_server_logging(str(log_file))

            logging.getLogger("marketplace.test").info("ledger entry appended")
            for handler in self.root_logger.handlers:
                handler.flush()

            assert "ledger entry appended" in log_file.read_text()

    def test_level_from_settings(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "log_level", "warning")
        assert get_log_level() == logging.WARNING

        monkeypatch.setattr(settings, "log_level", "nonsense")
        assert get_log_level() == logging.INFO

    def test_explicit_level_overrides_settings(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "log_level", "ERROR")

        assert get_log_level("debug") == logging.DEBUG

    def test_defaults_come_from_settings(self, monkeypatch) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "configured.log"
            monkeypatch.setattr(settings, "log_file", str(log_file))
            monkeypatch.setattr(settings, "log_level", "WARNING")

            setup_server_logging()

            assert self.root_logger.level == logging.WARNING
            assert log_file.exists()
            assert logging.getLogger("uvicorn.access").level == logging.WARNING
