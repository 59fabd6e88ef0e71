"""
Logging setup for the application.

Installs a single stream handler on the root logger. Modules keep logging
through ``logging.getLogger(__name__)``; uvicorn's loggers propagate here.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional


class SensitiveDataFilter(logging.Filter):
    """Mask secrets in JSON-shaped log messages."""

    SENSITIVE_KEYS = {
        "password",
        "certificate",
        "merchant_certificate",
        "private_key",
        "authorization",
        "cookie",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str) and record.msg.strip().startswith("{"):
            try:
                data = json.loads(record.msg)
            except json.JSONDecodeError:
                return True
            record.msg = json.dumps(self._mask(data))
        return True

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: "***MASKED***" if key.lower() in self.SENSITIVE_KEYS else self._mask(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self._mask(item) for item in data]
        return data


class StructuredFormatter(logging.Formatter):
    """Human readable text, or one JSON object per line."""

    def __init__(self, json_format: bool = False):
        super().__init__()
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc)
        if self.json_format:
            log_data = {
                "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }
            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_data, ensure_ascii=False)

        line = (
            f"[{timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {record.levelname:8s} "
            f"{record.name:30s} | {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: Optional[str] = None, json_format: bool = False) -> None:
    """
    Configure the root logger once.

    Args:
        level: log level name; defaults to INFO
        json_format: emit JSON lines instead of text
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_applepayjs", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(json_format=json_format))
    handler.addFilter(SensitiveDataFilter())
    handler._applepayjs = True
    root.addHandler(handler)
