"""Tests for filament_sync.utils.console_logger and gateway.logger."""

from __future__ import annotations

import logging
from io import StringIO
from typing import Any
from unittest.mock import MagicMock

from rich.console import Console

from filament_sync.gateway.logger import SyncLogger
from filament_sync.utils.console_logger import BaseConsoleLogger
from filament_sync.utils.logging import THIRD_PARTY_LOGGERS, setup_logging


class ConcreteLogger(BaseConsoleLogger):
    """Concrete implementation for testing the abstract base class."""

    def __init__(self) -> None:
        super().__init__("test_logger")
        self.console = Console(file=StringIO(), force_terminal=True, width=120)

    def summary(self, **kwargs: Any) -> None:
        self.print_summary("Test", elapsed=0.0, stats={})

    def get_output(self) -> str:
        self.console.file.seek(0)
        return self.console.file.read()


def _capturing_sync_logger() -> SyncLogger:
    logger = SyncLogger()
    logger.console = Console(file=StringIO(), force_terminal=False, width=120)
    logger._logger = MagicMock()
    return logger


# ---------------------------------------------------------------------------
# TestStructuredBlock
# ---------------------------------------------------------------------------


class TestStructuredBlock:
    """Tests for StructuredBlock context manager."""

    def test_prints_title_and_fields(self) -> None:
        logger = ConcreteLogger()

        with logger.block("events.jsonl") as b:
            b.field("guild", "01J00000000000000000000001")
            b.field("mode", "replay", color="magenta")

        output = logger.get_output()
        assert "events.jsonl" in output
        assert "guild:" in output
        assert "replay" in output

    def test_result_and_skip(self) -> None:
        logger = ConcreteLogger()

        with logger.block("Block") as b:
            b.result("replayed 100 frames")
            b.result("failed", success=False)
            b.skip("no frames")

        output = logger.get_output()
        assert "replayed 100 frames" in output
        assert "failed" in output
        assert "Skipped: no frames" in output


# ---------------------------------------------------------------------------
# TestBaseConsoleLogger
# ---------------------------------------------------------------------------


class TestBaseConsoleLogger:
    """Tests for BaseConsoleLogger base class."""

    def test_levels_delegate_to_python_logger(self) -> None:
        logger = ConcreteLogger()
        logger._logger = MagicMock()

        logger.info("i")
        logger.warning("w")
        logger.error("e")
        logger.debug("d")

        logger._logger.info.assert_called_once_with("i")
        logger._logger.warning.assert_called_once_with("w")
        logger._logger.error.assert_called_once_with("e")
        logger._logger.debug.assert_called_once_with("d")

    def test_success_prints_to_console(self) -> None:
        logger = ConcreteLogger()

        logger.success("done")

        assert "done" in logger.get_output()

    def test_print_summary_with_sections(self) -> None:
        logger = ConcreteLogger()

        logger.print_summary(
            "Replay",
            elapsed=1.25,
            stats={"Frames read": 1200},
            extra_sections={"Client state": {"Messages": 3}},
        )

        output = logger.get_output()
        assert "Replay Complete" in output
        assert "1,200" in output
        assert "Client state" in output
        assert "1.2s" in output or "1.3s" in output


# ---------------------------------------------------------------------------
# TestSyncLogger
# ---------------------------------------------------------------------------


class TestSyncLogger:
    """Tests for SyncLogger component methods."""

    def test_retry_includes_reason(self) -> None:
        logger = _capturing_sync_logger()

        logger.retry(1, 3, 0.5, "HTTP 503")

        logger._logger.warning.assert_called_once_with("Retry 1/3 in 0.50s (HTTP 503)")

    def test_dropped_events_are_debug_only(self) -> None:
        logger = _capturing_sync_logger()

        logger.event_dropped("typing_start", "unknown event type")

        logger._logger.debug.assert_called_once()
        logger._logger.warning.assert_not_called()

    def test_scope_cleared(self) -> None:
        logger = _capturing_sync_logger()

        logger.scope_changed(None, ())

        logger._logger.info.assert_called_once_with("Gateway scope cleared")

    def test_summary_panel(self) -> None:
        logger = _capturing_sync_logger()

        logger.summary(frames=10, decoded=8, dropped=2, elapsed=0.5, state={"Messages": 4})

        logger.console.file.seek(0)
        output = logger.console.file.read()
        assert "Frames dropped" in output
        assert "Messages" in output


# ---------------------------------------------------------------------------
# TestSetupLogging
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_quiets_third_party_loggers(self) -> None:
        setup_logging(level=logging.DEBUG)

        for name in THIRD_PARTY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_debug_third_party(self) -> None:
        setup_logging(debug_third_party=True)

        assert logging.getLogger("httpx").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO

    def test_log_file(self, tmp_path) -> None:
        log_file = tmp_path / "sync.log"

        setup_logging(log_file=log_file)
        logging.getLogger("filament_sync.test").warning("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file" in log_file.read_text(encoding="utf-8")
