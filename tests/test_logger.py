import logging

from herald.utils.logger import ColoredFormatter, log_debug, log_error, log_info, setup_logging


def make_record(level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord("herald", level, __file__, 1, message, None, None)


def test_info_lines_carry_no_level_tag():
    formatted = ColoredFormatter().format(make_record(logging.INFO, "Job registered"))

    assert "[LOG]" in formatted
    assert formatted.endswith("Job registered")
    assert "[INFO]" not in formatted


def test_other_levels_are_tagged():
    formatted = ColoredFormatter().format(make_record(logging.ERROR, "Delivery failed"))

    assert "[ERROR]" in formatted


def test_log_file_receives_records_at_configured_level(tmp_path):
    log_file = tmp_path / "logs" / "herald.log"

    setup_logging(level="INFO", log_file=log_file)
    log_debug("hidden detail")
    log_info("Reminder sent")
    log_error("Channel rejected message")
    setup_logging(level="INFO")

    content = log_file.read_text(encoding="utf-8")
    assert "Reminder sent" in content
    assert "Channel rejected message" in content
    assert "hidden detail" not in content
