"""Centralized logging configuration for Study Tree."""

import logging

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Configure the root logger once; repeated calls only adjust the level."""
    logger = logging.getLogger()
    logger.setLevel(level)
    if not any(getattr(h, "_studytree", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handler._studytree = True
        logger.addHandler(handler)
    return logger
