# src/asvflow/utils/logger.py
from __future__ import annotations

import logging
from typing import Optional

_LOGGER_NAME = "asvflow"
_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Child of the 'asvflow' logger, e.g. get_logger("merge") -> 'asvflow.merge'."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)


def setup_logger(log_file: Optional[str] = "asvflow.log", *, verbose: bool = False) -> logging.Logger:
    """
    Attach handlers to the 'asvflow' logger once per process:
      - console at INFO (DEBUG with verbose=True)
      - full DEBUG log in *log_file*, skipped when it is None
    """
    logger = logging.getLogger(_LOGGER_NAME)
    if getattr(setup_logger, "_configured", False):
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)

    fmt = logging.Formatter(_FORMAT)
    handlers = [(logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO)]
    if log_file:
        handlers.append((logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG))
    for handler, level in handlers:
        handler.setLevel(level)
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    setup_logger._configured = True  # type: ignore[attr-defined]
    return logger
