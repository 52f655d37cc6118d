from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from foundry.config import get_settings

_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging() -> logging.Logger:
    logger = logging.getLogger("foundry")

    # Guard against duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    settings = get_settings()
    logger.setLevel(settings.log_level)

    # File handler: rotating, DEBUG level
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        settings.log_dir / "foundry.log",
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(file_handler)

    # Console handler: WARNING level (keep terminal quiet)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(console_handler)

    return logger
