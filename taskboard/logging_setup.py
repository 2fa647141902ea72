import logging
import sys

from taskboard.config import LOG_LEVEL


def setup_logging(level: str = LOG_LEVEL) -> None:
    """
    Sends log records to stderr in a single line format.

    Does nothing beyond setting the level when the root logger already has
    handlers, e.g. when running under pytest or a process manager that
    configured logging first.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
