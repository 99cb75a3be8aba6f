"""Logging utilities for orbiter.

Every component logger is a child of one "orbiter" logger. The parent owns
the stdout handler and the level, so set_level() reaches loggers that
modules created at import time.
"""
import logging
import os
import sys
import threading

ROOT_LOGGER_NAME = "orbiter"
LOG_LEVEL_ENV = "ORBITER_LOG_LEVEL"

_root_init_lock = threading.Lock()


class OrbiterFormatter(logging.Formatter):
    """Compact formatter for orbiter logs.

    Format: [{level[0]} {time}.{ms} {component[:9]}] {message}
    Example: [I 14:23:45.123 parameter] Added parameter 'x' [-100, 100]
    """

    def format(self, record):
        component = record.name.rsplit('.', 1)[-1][:9].ljust(9)
        timestamp = self.formatTime(record, "%H:%M:%S")
        prefix = f"[{record.levelname[0]} {timestamp}.{int(record.msecs):03d} {component}]"
        return f"{prefix} {record.getMessage()}"


def parse_level(level: str) -> int:
    """Map DEBUG/INFO/WARNING/ERROR (any case) to a logging level.

    Raises:
        ValueError: If the name is not a logging level
    """
    value = getattr(logging, str(level).upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _root_init_lock:
        if not root.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(OrbiterFormatter())
            root.addHandler(handler)
            try:
                root.setLevel(parse_level(os.getenv(LOG_LEVEL_ENV, "INFO")))
            except ValueError:
                root.setLevel(logging.INFO)
    return root


def set_level(level: str) -> None:
    """Set the level of every orbiter logger at once.

    Raises:
        ValueError: If the name is not a logging level
    """
    _root_logger().setLevel(parse_level(level))


def get_logger(name: str) -> logging.Logger:
    """Get the logger for an orbiter component.

    The level starts from ORBITER_LOG_LEVEL (default INFO) and follows
    set_level() afterwards.

    Example:
        >>> from orbiter.log import get_logger
        >>> logger = get_logger("midi")
        >>> logger.info("MIDI controller started")
        [I 14:23:45.123 midi     ] MIDI controller started
    """
    _root_logger()
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
