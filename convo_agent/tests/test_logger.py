import json
import logging

from convo_agent.infrastructure.logging.logger import JsonFormatter, setup_logger


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("convo_agent", logging.INFO, __file__, 1, msg, None, None)
    if extra:
        record.extra = extra
    return record


def test_json_formatter_merges_extra():
    line = JsonFormatter().format(_record("Completed agent turn", trace_id="tr-1", user_id="u1"))
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["name"] == "convo_agent"
    assert payload["msg"] == "Completed agent turn"
    assert payload["trace_id"] == "tr-1"
    assert payload["ts"].endswith("Z")


def test_json_formatter_redacts_long_messages():
    payload = json.loads(JsonFormatter(redact_content=True).format(_record("x" * 100)))
    assert payload["msg"] == "x" * 64


def test_setup_logger_writes_to_log_dir(tmp_path):
    log = setup_logger(level="debug", log_dir=str(tmp_path), redact_content=False)
    try:
        log.info("hello", extra={"extra": {"user_id": "u1"}})
        for handler in log.handlers:
            handler.flush()
        lines = (tmp_path / "agent.log").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["user_id"] == "u1"
        assert log.level == logging.DEBUG
    finally:
        setup_logger(level="INFO", log_dir="", redact_content=False)
