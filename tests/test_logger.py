"""Tests for tabby_agent.logger module."""

import logging

import pytest

from tabby_agent.logger import (
    ROOT_LOGGER_NAME,
    SILENT,
    LoggerRegistry,
    LogSink,
    to_logging_level,
)


@pytest.fixture
def sink():
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.tests")
    yield LogSink(logger)
    logger.setLevel(logging.NOTSET)


class TestToLoggingLevel:
    @pytest.mark.parametrize(
        "name,level",
        [
            ("silent", SILENT),
            ("error", logging.ERROR),
            ("warn", logging.WARNING),
            ("info", logging.INFO),
            ("debug", logging.DEBUG),
        ],
    )
    def test_known_levels(self, name, level):
        assert to_logging_level(name) == level

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            to_logging_level("verbose")


class TestLogSink:
    """Tests for LogSink."""

    def test_level_sets_logger_level(self, sink):
        sink.level = "info"

        assert sink.level == "info"
        assert sink.logger.level == logging.INFO

    def test_silent_blocks_critical(self, sink):
        sink.level = "silent"
        assert not sink.isEnabledFor(logging.CRITICAL)

    def test_bindings_prefix_messages(self, sink, caplog):
        sink.level = "debug"
        sink.set_bindings({"client": "vim"})

        with caplog.at_level(logging.DEBUG, logger=sink.logger.name):
            sink.info("hello")

        assert "[client=vim] hello" in caplog.text

    def test_set_bindings_merges(self, sink):
        sink.set_bindings({"client": "vim"})
        sink.set_bindings({"session": "1"})

        assert sink.bindings == {"client": "vim", "session": "1"}


class TestLoggerRegistry:
    """Tests for LoggerRegistry."""

    def test_root_is_package_logger(self):
        registry = LoggerRegistry()

        assert registry.root.logger.name == ROOT_LOGGER_NAME
        assert registry.root.level == "silent"
        assert len(registry) == 1

    def test_set_level_applies_to_all_sinks(self, sink):
        registry = LoggerRegistry()
        registry.add(sink)

        registry.set_level("debug")

        assert [s.level for s in registry] == ["debug", "debug"]
        registry.set_level("silent")

    def test_set_level_rejects_unknown(self):
        with pytest.raises(ValueError):
            LoggerRegistry().set_level("loud")

    def test_set_bindings_skips_plain_sinks(self):
        class PlainSink:
            level = "silent"

        registry = LoggerRegistry()
        plain = PlainSink()
        registry.add(plain)

        registry.set_bindings({"client": "emacs"})

        assert registry.root.bindings == {"client": "emacs"}
        assert not hasattr(plain, "bindings")

    def test_add_is_idempotent(self, sink):
        registry = LoggerRegistry()
        registry.add(sink)
        registry.add(sink)

        assert len(registry) == 2

    def test_child_inherits_bindings(self):
        registry = LoggerRegistry()
        registry.set_bindings({"client": "vim"})

        child = registry.child("api")

        assert child.logger.name == f"{ROOT_LOGGER_NAME}.api"
        assert child.bindings == {"client": "vim"}
