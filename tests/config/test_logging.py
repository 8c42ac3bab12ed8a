"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
import structlog

from tflayerctl.config.logging import configure_logging, redact_secrets


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    tfl = logging.getLogger("tflayerctl")
    tfl_level = tfl.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    tfl.setLevel(tfl_level)
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("tflayerctl").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("tflayerctl").level == logging.WARNING

    def test_single_handler(self) -> None:
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        log = structlog.get_logger("tflayerctl.test")
        log.warning("item.failed", code="STATE_LOCKED")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "item.failed"
        assert parsed["code"] == "STATE_LOCKED"
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "tflayerctl.test"
        assert "timestamp" in parsed

    def test_context_vars_merged(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.contextvars.bind_contextvars(layer="dns", environment="dev")
        structlog.get_logger("tflayerctl.test").info("item.start")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["layer"] == "dns"
        assert parsed["environment"] == "dev"

    def test_stdlib_logger_gets_structured_fields(
        self, capfd: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("tflayerctl.infrastructure.git").debug("git %s", "diff")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "git diff"
        assert parsed["level"] == "debug"

    def test_quiet_by_default(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=False, log_json=True)
        structlog.get_logger("tflayerctl.test").info("hidden")
        assert capfd.readouterr().err == ""

    def test_secrets_masked(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.get_logger("tflayerctl.test").info("auth", arm_client_secret="s3cret-value")
        err = capfd.readouterr().err
        assert "s3cret-value" not in err
        assert json.loads(err.strip())["arm_client_secret"] == "***"


class TestRedactSecrets:
    def test_only_sensitive_keys(self) -> None:
        event = {"event": "x", "storage_access_key": "k", "layer": "dns", "SAS_TOKEN": "t"}
        assert redact_secrets(None, "info", event) == {
            "event": "x",
            "storage_access_key": "***",
            "layer": "dns",
            "SAS_TOKEN": "***",
        }
