"""
Structured logging for hvstats.

Every record is emitted as a single JSON object per line so collector output
can be shipped to a log pipeline without further parsing.
"""

import json
import logging
import sys
from typing import IO, Any, Dict, Union
from datetime import datetime, timezone


class StructuredLogger:
    """
    A logger that outputs logs in a structured JSON format.
    """

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        # Clear existing handlers to avoid duplicate logs
        if self.logger.handlers:
            self.logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(self.JsonFormatter())
        self.logger.addHandler(handler)

    class JsonFormatter(logging.Formatter):
        # Standard LogRecord attributes that should not be included as extra fields
        STANDARD_ATTRS = set(
            logging.LogRecord("", 0, "", 0, "", (), None).__dict__
        ) | {"message", "asctime", "taskName"}

        def format(self, record: logging.LogRecord) -> str:
            log_entry: Dict[str, Any] = {
                "timestamp": datetime.fromtimestamp(
                    record.created, timezone.utc
                ).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }

            if record.exc_info:
                log_entry["exception"] = self.formatException(record.exc_info)

            for key, value in record.__dict__.items():
                if key not in self.STANDARD_ATTRS:
                    log_entry[key] = value

            # Driver objects and enums end up in extras; render them as text
            return json.dumps(log_entry, default=str)

    def set_stream(self, stream: IO[str]) -> IO[str]:
        """Point the JSON handler at another stream and return the old one."""
        handler = self.logger.handlers[0]
        return handler.setStream(stream) or stream

    def set_level(self, level: Union[int, str]) -> None:
        """Change the threshold, accepting either a number or a level name."""
        if isinstance(level, str):
            resolved = logging.getLevelName(level.upper())
            if not isinstance(resolved, int):
                raise ValueError(f"Unknown log level: {level}")
            level = resolved
        self.logger.setLevel(level)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, exc_info=exc_info, extra=kwargs)

    def warning(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.warning(message, exc_info=exc_info, extra=kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=kwargs)


# Global logger instance
logger = StructuredLogger("hvstats")
