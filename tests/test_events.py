import io
import json
import logging

import pytest

from servicemon.events import EventLogger, FieldsTextFormatter, JsonFormatter


def make_logger(formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger = logging.getLogger(f"test-events-{id(stream)}")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def test_emit_writes_fields_as_json_attributes():
    logger, stream = make_logger(JsonFormatter())
    events = EventLogger(logger)

    events.emit("info", "Services list requested", {"service_count": 3, "path": "/api/services"})

    entry = json.loads(stream.getvalue())
    assert entry["msg"] == "Services list requested"
    assert entry["level"] == "info"
    assert entry["service_count"] == 3
    assert entry["path"] == "/api/services"


def test_fatal_and_warn_levels():
    logger, stream = make_logger(JsonFormatter())
    events = EventLogger(logger)

    events.emit("warn", "Service not found", {"service": "queue"})
    events.emit("fatal", "Server failed to start", {"error": "address in use"})

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["level"] for line in lines] == ["warning", "fatal"]
    assert lines[0]["service"] == "queue"


def test_fields_do_not_override_core_keys():
    logger, stream = make_logger(JsonFormatter())
    EventLogger(logger).emit("debug", "Health check performed", {"msg": "spoof"})
    entry = json.loads(stream.getvalue())
    assert entry["msg"] == "Health check performed"


def test_text_formatter_appends_key_values():
    logger, stream = make_logger(FieldsTextFormatter("%(levelname)s %(message)s"))
    EventLogger(logger).emit("info", "Service status requested", {"service": "cache", "status": "running"})
    assert stream.getvalue().strip() == "INFO Service status requested service=cache status=running"


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        EventLogger(logging.getLogger("test-events")).emit("loud", "nope")
