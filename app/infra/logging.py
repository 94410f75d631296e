"""Structured logging configuration."""

import logging
import sys
from pythonjsonlogger import jsonlogger
from app.infra.config import config


def _resolve_level() -> int:
    if config.LOG_LEVEL:
        level = logging.getLevelName(config.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if config.DEBUG else logging.INFO


def setup_logging():
    """Attach a JSON stdout handler to the ``app`` logger tree."""
    logger = logging.getLogger("app")
    logger.setLevel(_resolve_level())

    # Idempotent across reloads
    logger.handlers = []

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # httpx logs full request URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)

    return logger


app_logger = setup_logging()
