from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime

# Extra keys copied from log records into the JSON line when present.
STRUCTURED_FIELDS = (
    "role",
    "service",
    "run_id",
    "venue",
    "submission_version_id",
    "job_id",
    "transition",
    "status",
    "phase",
    "did_work",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {key: str(getattr(record, key)) for key in STRUCTURED_FIELDS if getattr(record, key, None) is not None}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def log_level_from_env(default: int = logging.INFO) -> int:
    name = os.getenv("LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def configure_logging(level: int | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level_from_env() if level is None else level)
