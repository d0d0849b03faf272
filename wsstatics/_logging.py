"""
Logging for wsstatics. Messages go to stderr via the "wsstatics" logger.
"""

import sys
import time
import logging


class Formatter(logging.Formatter):
    """ Formatter that adds the level and a timestamp before the message.
    """

    def format(self, record):
        return "[{} {}] {}".format(
            record.levelname[0],
            time.strftime("%Y-%m-%d %H:%M:%S"),
            super().format(record),
        )


def set_log_level(level):
    """ Set the level of the wsstatics logger. The level can be an int
    or a name like "warning", "info" or "debug".
    """
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        if not isinstance(value, int):
            raise ValueError(f"Invalid log level: {level!r}")
        level = value
    logger.setLevel(level)


# Get our logger
logger = logging.getLogger("wsstatics")
logger.propagate = False
logger.setLevel(logging.INFO)

# Initialize the logger to write to stderr (but can be overriden)
_handler = logging.StreamHandler(sys.stderr)
_handler.setFormatter(Formatter())
logger.addHandler(_handler)
