# cam_explainer/utils/logger.py

# Import the standard logging machinery
import logging

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger. Handlers are configured once by the entry point.
    """
    return logging.getLogger(name)


def configure_logging(verbose: bool = False) -> None:
    """
    Attach a stream handler to the root logger (idempotent).
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
