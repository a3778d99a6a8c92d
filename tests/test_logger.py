"""Tests for logger module."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest

from anoncord.util import logger as relay_logging
from anoncord.util.logger import (
    LOG_FORMAT,
    DATE_FORMAT,
    ROOT_LOGGER_NAME,
    LevelColorFormatter,
    PromptToolkitHandler,
    console_level,
    configure_logging,
    get_logger,
    handle_exception,
    session_log_path,
    should_use_color,
)


def _record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="anoncord.test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
        func="test_func",
    )


class TestShouldUseColor:
    @patch('sys.stderr.isatty')
    def test_tty(self, mock_isatty):
        mock_isatty.return_value = True
        assert should_use_color() is True

    @patch('sys.stderr.isatty')
    def test_no_tty(self, mock_isatty):
        mock_isatty.return_value = False
        assert should_use_color() is False

    @patch('sys.stderr.isatty')
    def test_exception(self, mock_isatty):
        mock_isatty.side_effect = Exception("Error")
        assert should_use_color() is False


class TestLevelColorFormatter:
    def test_warning_is_yellow(self):
        formatted = LevelColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT).format(_record(logging.WARNING, "careful"))

        assert formatted.startswith("\033[33m")
        assert formatted.endswith("\033[0m")
        assert "[anoncord.test] careful" in formatted

    def test_unknown_level_is_uncoloured(self):
        formatted = LevelColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT).format(_record(25, "custom"))

        assert "\033[" not in formatted


class TestConsoleLevel:
    def test_default_is_info(self, monkeypatch):
        monkeypatch.delenv("ANONCORD_LOG_LEVEL", raising=False)
        assert console_level() == logging.INFO

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ANONCORD_LOG_LEVEL", " debug ")
        assert console_level() == logging.DEBUG

    def test_unknown_name_falls_back(self, monkeypatch):
        monkeypatch.setenv("ANONCORD_LOG_LEVEL", "chatty")
        assert console_level() == logging.INFO


class TestConfigureLogging:
    @pytest.fixture
    def fresh_root(self):
        root = logging.getLogger(ROOT_LOGGER_NAME)
        saved = root.handlers[:]
        root.handlers = []
        yield root
        for handler in root.handlers:
            handler.close()
        root.handlers = saved

    def test_adds_console_and_rotating_file_once(self, fresh_root, tmp_path):
        configure_logging(tmp_path)
        configure_logging(tmp_path)

        kinds = sorted(type(h).__name__ for h in fresh_root.handlers)
        assert kinds == [PromptToolkitHandler.__name__, RotatingFileHandler.__name__]
        assert fresh_root.propagate is False

    def test_file_receives_debug_from_children(self, fresh_root, tmp_path):
        configure_logging(tmp_path)
        child = fresh_root.getChild("relay_pipeline")

        child.debug("handle %s assigned", "Anon-AAAA")
        for handler in fresh_root.handlers:
            handler.flush()

        (log_file,) = tmp_path.glob("anoncord-*.log")
        assert "[anoncord.relay_pipeline] handle Anon-AAAA assigned" in log_file.read_text(encoding="utf-8")

    def test_third_party_loggers_are_quieted(self, fresh_root, tmp_path):
        configure_logging(tmp_path)

        assert logging.getLogger("discord").level == logging.WARNING


def test_get_logger_returns_namespaced_child():
    log = get_logger("consensus_engine")

    assert log.name == "anoncord.consensus_engine"
    assert log.parent is logging.getLogger(ROOT_LOGGER_NAME)


def test_session_log_path_creates_directory(tmp_path):
    path = session_log_path(tmp_path / "logs")

    assert path.parent.is_dir()
    assert path.name.startswith("anoncord-")
    assert path.suffix == ".log"


class TestHandleException:
    def test_logs_uncaught_exception(self):
        with patch.object(relay_logging.logging.getLogger(ROOT_LOGGER_NAME), "critical") as critical:
            handle_exception(ValueError, ValueError("boom"), None)

        critical.assert_called_once()
        assert critical.call_args.kwargs["exc_info"][0] is ValueError

    def test_keyboard_interrupt_uses_default_hook(self):
        with patch("sys.__excepthook__") as default_hook:
            handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

        default_hook.assert_called_once()
