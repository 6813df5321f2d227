# logging_setups.py

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

def setup_logger(name: str, log_file: Optional[str] = None, level: int = logging.INFO, console: bool = True) -> logging.Logger:
    """
    Configure and return a named logger.

    Handlers from a previous call are replaced, so a command can be invoked
    repeatedly in one interpreter without duplicating output. Console output
    goes to stderr; stdout is reserved for command results.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    formatter = logging.Formatter(LOG_FORMAT)
    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    # optional file handler
    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=int(5e6), backupCount=3)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
