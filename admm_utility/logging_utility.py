"""
File: logging_utility.py

Helper to route the ADMM progress stream (python_admm.admm logs it at INFO
level when ``verbose`` is set) to the console with a uniform format.
"""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s: %(message)s"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Create a logger with a stream handler and uniform format.

    Parameters
    ----------
    name : str
        Logger name, e.g. ``"python_admm"`` to capture the solver output.
    level : str
        Logging level name (``"DEBUG"``, ``"INFO"``, ...).

    Returns
    -------
    logging.Logger
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
