"""Structured console logging shared by the API and the settlement flow."""

import logging
import os
from typing import Optional

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One line per record: timestamp | level | logger | message | key=value ..."""

    def format(self, record):
        timestamp = self.formatTime(record, self.datefmt or "%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        logger_name = record.name.split(".")[-1][:20].ljust(20)
        log_line = f"{timestamp} | {level} | {logger_name} | {record.getMessage()}"

        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED and value is not None
        ]
        if extras:
            log_line += f" | {' '.join(extras)}"

        if record.exc_info:
            log_line += f"\n{self.formatException(record.exc_info)}"

        return log_line


def configure_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a logger with the structured console handler attached.

    The level comes from LOG_LEVEL (default INFO).
    """
    logger = logging.getLogger(name if name else "tribute")

    log_level = LOG_LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logger.setLevel(log_level)

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)
        logger.propagate = False

    return logger
