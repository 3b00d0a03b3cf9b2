"""
Package logging setup.

Library modules log through ``logging.getLogger(__name__)`` and never print.
The CLI calls ``setup_logger`` once to attach a stderr handler to the package
logger.
"""
import logging
import sys
from typing import Union

LOGGER_NAME = "satchel"


def setup_logger(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)

    return logger


__all__ = ["LOGGER_NAME", "setup_logger"]
