"""Logging configuration for swarm bootstrap."""

import logging
import re
import sys
from pathlib import Path

# requests logs every connection through urllib3, including metadata lookups
NOISY_LOGGERS = ("urllib3",)

_TOKEN_PATTERN = re.compile(r"SWMTKN-1-[0-9A-Za-z-]+")


class TokenMaskFilter(logging.Filter):
    """Masks swarm join tokens in log records before a handler writes them."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _TOKEN_PATTERN.sub(lambda m: m.group(0)[:12] + "...", message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file, e.g. /var/log/docker-swarm-setup.log
        verbose: If True, set level to DEBUG
    """
    if verbose:
        level = "DEBUG"

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()
    token_filter = TokenMaskFilter()

    # Console only shows warnings unless verbose; the terminal status line is printed separately
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING if not verbose else logging.DEBUG)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(token_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(token_filter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            # Unwritable log path; keep logging to the console
            logging.warning(f"Failed to create log file handler: {e}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
