# venmito/logging_config.py
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Configure process-wide logging once.

    basicConfig is a no-op when the root logger already has handlers
    (uvicorn, pytest), so the package logger level is set explicitly as well.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers)
    logging.getLogger("venmito").setLevel(level.upper())
