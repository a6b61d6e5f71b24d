"""
Logging helpers shared by the services and the HTTP layer.
"""
import logging

_SERVICE_NAME = "stillcast"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Return a logger with a single stream handler attached.

    Args:
        name: Dotted logger name, usually ``__name__``
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(f"%(asctime)s - {_SERVICE_NAME} - %(levelname)s - %(message)s")
        )
        logger.addHandler(handler)

    return logger
