"""
Logging setup for the relay.

Everything logs under the ``voice_relay`` logger, tagged per call with ``[<call id>]``.
Records go to stdout and, when a log file is given, to a rotating file. Credentials
for OpenAI and Square are masked before any handler formats a record.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from voice_relay.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_FILE = Path("logs") / "voice_relay.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Transport libraries log every frame and request at DEBUG
QUIET_LOGGERS = ("websockets", "httpx", "httpcore")

# Bearer tokens, OpenAI keys and Square access tokens
SECRET_PATTERN = re.compile(r"(Bearer\s+|\bsk-|\bEAAA)[A-Za-z0-9_\-\.]{6,}")
REDACTED = "***REDACTED***"


class RedactSecretsFilter(logging.Filter):
    """Mask credentials in the rendered message of each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = SECRET_PATTERN.sub(lambda m: m.group(1) + REDACTED, message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = LOG_FILE,
) -> logging.Logger:
    """
    Configure the relay logger. Calling it again replaces the previous handlers.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Rotating log file path, or None for console only

    Returns:
        logging.Logger: The configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    for existing in logger.filters[:]:
        logger.removeFilter(existing)
    logger.addFilter(RedactSecretsFilter())

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=MAX_LOG_SIZE,
                backupCount=BACKUP_COUNT
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not set up file logging at {log_path}: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.propagate = False
    logger.debug(f"Logging configured at {logging.getLevelName(logger.level)}")
    return logger
