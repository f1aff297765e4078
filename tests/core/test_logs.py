import json
import logging

from cachette.config.schemas import LoggingConfig
from cachette.logs import JsonLineFormatter, configure_logging


def test_configure_logging_single_handler():
    configure_logging(LoggingConfig(level="debug"))
    root = configure_logging(LoggingConfig(level="warn"))
    named = [h for h in root.handlers if h.get_name() == "cachette-default"]
    assert len(named) == 1
    assert root.level == logging.WARNING


def test_json_line_format():
    record = logging.LogRecord(
        "cachette.hub", logging.INFO, __file__, 1, "fetched %s", ("a",), None
    )
    data = json.loads(JsonLineFormatter().format(record))
    assert data["level"] == "info"
    assert data["logger"] == "cachette.hub"
    assert data["msg"] == "fetched a"
