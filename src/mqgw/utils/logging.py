"""Logging configuration."""

from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger import jsonlogger


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("mqgw")
    if logger.handlers:
        return logger

    log_level = getattr(logging, os.environ.get("LOG_LEVEL", level).upper(), logging.INFO)
    logger.setLevel(log_level)
    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = logging.getLogger("mqgw")
    if not base.handlers:
        configure_logging()
    if name is None:
        return base
    # module names already carry the package prefix
    if name.startswith("mqgw."):
        name = name[len("mqgw."):]
    return base.getChild(name)
