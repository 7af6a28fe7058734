"""Tests for exposure-chain structured logging."""

import io
import json
import logging

import structlog

from exposure_chain.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        configure_logging()
        logger = get_logger("test")
        logger.info("test message")

    def test_configure_with_text_format(self):
        """Should accept text format for development."""
        configure_logging(level="INFO", format="text")
        logger = get_logger("test")
        logger.info("text format message")

    def test_configure_multiple_times(self):
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        logger = get_logger("test")
        logger.debug("after reconfigure")

    def test_unknown_level_falls_back(self):
        configure_logging(level="NOPE")
        get_logger("test").info("still logs")


class TestContextBinding:
    """Report ids bound once appear on every following line."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context(self):
        bind_context(report_id="rpt_123")
        assert structlog.contextvars.get_contextvars() == {"report_id": "rpt_123"}

    def test_unbind_specific_context(self):
        bind_context(report_id="rpt_123", hop=2)
        unbind_context("hop")
        assert structlog.contextvars.get_contextvars() == {"report_id": "rpt_123"}

    def test_clear_context(self):
        bind_context(report_id="rpt_123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestStdlibRouting:
    """Standard library records pass through the structlog processors."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()
        configure_logging()

    def test_bound_report_id_on_module_logger_lines(self):
        stream = io.StringIO()
        configure_logging(level="INFO", format="json", stream=stream)
        bind_context(report_id="rpt_123")

        logging.getLogger("exposure_chain.propagation.engine").info(
            "Starting propagation: %d STI types", 2
        )

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "Starting propagation: 2 STI types"
        assert record["report_id"] == "rpt_123"
        assert record["level"] == "info"
        assert record["logger"] == "exposure_chain.propagation.engine"

    def test_level_filters_stdlib_records(self):
        stream = io.StringIO()
        configure_logging(level="WARNING", format="json", stream=stream)

        logging.getLogger("exposure_chain.cache").info("hidden")
        logging.getLogger("exposure_chain.cache").warning("shown")

        lines = stream.getvalue().strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["shown"]

    def test_reconfigure_replaces_handler(self):
        first, second = io.StringIO(), io.StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        logging.getLogger("exposure_chain").warning("once")

        assert first.getvalue() == ""
        assert len(second.getvalue().strip().splitlines()) == 1


class TestModuleLevelLogger:
    def test_import_logger(self):
        from exposure_chain.logging import logger

        assert logger is not None
        logger.info("using module logger", report_id="rpt_1")
