"""
Core Module - Logging Setup.

============================================================
RESPONSIBILITY
============================================================
Configures process-wide logging for services embedding the engine.

Library modules only create module loggers
(logging.getLogger(__name__)); handlers and formats are
installed once, here, by the host process at start-up.

============================================================
FORMATS
============================================================
json: one JSON object per line (timestamp, level, logger,
      message, correlation_id, and exception when present)
text: pipe-separated, for local runs

============================================================
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


class JsonLogFormatter(logging.Formatter):
    """Render each record as a single JSON line."""

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self._correlation_id = correlation_id or ""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", self._correlation_id),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    Calling it again replaces the previous handler.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonLogFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or '-'} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("trust_engine")
