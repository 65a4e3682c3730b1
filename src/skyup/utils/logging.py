"""Logger setup for the SkyUp engine and service."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from skyup.config import SkyupConfig

ISO_8601 = "%Y-%m-%dT%H:%M:%S%z"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty third-party loggers; per-request lines from httpx would drown
# the per-entry install log at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logger(
    name: str = "skyup",
    log_file: str = "./logs/skyup.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 3,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Attach a rotating file handler (and optionally console) to a logger.

    Service modules log through children of this logger
    (skyup.download, skyup.install, ...), so configuring the root
    "skyup" logger once covers the whole engine. Calling it again for the
    same name is a no-op.

    Args:
        name: Logger name
        log_file: Path to log file, parent directories are created
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: Logging level
        console: Also log to stderr

    Returns:
        Configured logger instance
    """
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=ISO_8601)
    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def setup_logging_from_config(config: SkyupConfig) -> logging.Logger:
    """Configure the "skyup" logger tree from service configuration."""
    logger = setup_logger("skyup", config.log_file, level=config.log_level_value)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, config.log_level_value))
    return logger
