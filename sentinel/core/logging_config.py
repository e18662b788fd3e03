"""
Logging setup shared by the backend server and the telemetry consumer.

Each service configures its top-level logger once; module loggers such as
"sentinel.detection" or "backend.incident" propagate to it.
"""

import logging
import logging.handlers
from typing import Optional

from .config import Config, config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    logger_name: str = "sentinel",
    settings: Optional[Config] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Attach console and rotating file handlers to a service logger.

    Args:
        logger_name: Top-level logger, also the log file stem
        settings: Config providing the level and logs directory (module config by default)
        level: Overrides settings.log_level

    Returns:
        The configured logger
    """
    settings = settings or config
    level = (level or settings.log_level).upper()
    logger = logging.getLogger(logger_name)

    # Don't add handlers if logger already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)

    # Same format on console and disk
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler, one file per service
    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        settings.logs_dir / f"{logger_name}.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
