import logging
import logging.handlers

from rulecord.util.logger import (
    ColorFormatter,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def __init__(self, tty=True):
        self.tty = tty

    def write(self, msg):
        pass

    def isatty(self):
        return self.tty


def test_get_logger_attaches_console_and_file_handlers():
    logger = get_logger("rulecord_test_logger")
    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers)
    assert logger.propagate is False


def test_setup_logger_idempotent():
    logger1 = setup_logger("rulecord_test_logger_idem")
    count = len(logger1.handlers)
    logger2 = setup_logger("rulecord_test_logger_idem")
    assert logger1 is logger2
    assert len(logger2.handlers) == count


def test_color_formatter_wraps_known_levels():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert formatted.startswith("\033[31m") and "error occurred" in formatted


def test_should_use_color_follows_tty(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream(tty=True))
    assert should_use_color() is True
    monkeypatch.setattr("sys.stderr", DummyStream(tty=False))
    assert should_use_color() is False


def test_log_filepath_is_stable_within_session():
    path = get_log_filepath()
    assert path.parent.exists()
    assert get_log_filepath() == path


def test_handle_exception_logs_error(caplog):
    class DummyException(Exception):
        pass

    with caplog.at_level(logging.ERROR):
        try:
            raise DummyException("fail")
        except DummyException as exc:
            handle_exception(DummyException, exc, exc.__traceback__)
    assert any("Uncaught exception" in r.message for r in caplog.records)


def test_setup_logger_applies_base_level_to_console():
    logger = setup_logger("rulecord_test_logger_level", base_level=logging.WARNING)
    console = next(h for h in logger.handlers if isinstance(h, PromptToolkitHandler))
    file_handler = next(h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler))

    assert logger.level == logging.WARNING
    assert console.level == logging.WARNING
    assert file_handler.level == logging.DEBUG


def test_get_logger_defaults_to_debug():
    logger = get_logger("rulecord_test_logger_default_level")
    console = next(h for h in logger.handlers if isinstance(h, PromptToolkitHandler))
    assert logger.level == logging.DEBUG
    assert console.level == logging.DEBUG
