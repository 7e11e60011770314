import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from convo_agent.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    redact_content: Optional[bool] = None,
) -> logging.Logger:
    logger = logging.getLogger("convo_agent")
    logger.setLevel((level or settings.log_level).upper())
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    directory = log_dir if log_dir is not None else settings.log_dir
    if directory:
        path = Path(directory)
        path.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path / "agent.log", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    redact = settings.log_redact_content if redact_content is None else redact_content
    handler.setFormatter(JsonFormatter(redact_content=redact))
    logger.addHandler(handler)
    return logger


logger = setup_logger()
