"""
Application logging for the monitor process.

The poll cycle's progress and the final status line go to stderr and,
when LOG_FILE is set, to a size-rotated file next to the audit output.
Audit records themselves are written by the audit sink, not through here.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(
    logger_name: str = "table_monitor",
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the monitor's logger tree.

    Modules log through logging.getLogger(__name__), so configuring the
    package logger once at startup covers every component. Calling this
    again replaces the previous handlers, which lets the entry point start
    with console output and add the file once configuration is loaded.

    Args:
        logger_name: Logger to configure, normally the package name
        log_level: Level name; unknown names fall back to INFO
        log_file: Application log path, rotated at max_bytes with
            backup_count old files kept. Console only when None.

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    _attach(logger, logging.StreamHandler(), level)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _attach(
            logger,
            logging.handlers.RotatingFileHandler(
                log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
            ),
            level,
        )

    # Handlers live on this logger only; the root logger stays untouched.
    logger.propagate = False

    return logger
