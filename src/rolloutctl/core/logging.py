"""Logging for rolloutctl.

Records from the ``rolloutctl`` logger tree go to stderr through rich when
colour is enabled. Controllers log through a ``RolloutLogger`` bound to
their controller and environment, so every line says which rollout it
belongs to.
"""

import logging
import sys
from enum import Enum
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "rolloutctl"

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Keyword arguments the stdlib logging methods accept themselves
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def levelno(self) -> int:
        return getattr(logging, self.name)

    @classmethod
    def from_flags(cls, verbose: int, quiet: bool, default: "LogLevel") -> "LogLevel":
        """Pick the level for ``-v``/``-vv``/``-q``; flags win over ``default``."""
        if verbose >= 2:
            return cls.DEBUG
        if verbose == 1:
            return cls.INFO
        if quiet:
            return cls.ERROR
        return default


def setup_logging(level: LogLevel = LogLevel.INFO, rich_output: bool = True) -> logging.Logger:
    """Attach a stderr handler to the ``rolloutctl`` logger.

    Only the package's own logger tree is touched, so an application
    embedding the controllers keeps its root configuration. Calling this
    again replaces the handler installed by the previous call.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if rich_output:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%H:%M:%S"))

    logger.addHandler(handler)
    logger.setLevel(level.levelno)

    # Per-request lines from the health and metrics clients are noise here
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the ``rolloutctl`` tree."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class RolloutLogger(logging.LoggerAdapter):
    """Logger adapter that appends bound and per-call fields to each message.

    Fields are rendered as a trailing ``[key=value ...]`` block::

        log = RolloutLogger(get_logger("deploy")).bind(controller="canary")
        log.info("Traffic adjusted", percentage=30)
        # Traffic adjusted [controller=canary percentage=30]
    """

    def __init__(self, logger: logging.Logger, fields: dict[str, Any] | None = None):
        super().__init__(logger, {})
        self.fields = dict(fields or {})

    def bind(self, **fields: Any) -> "RolloutLogger":
        """Return a logger carrying ``fields`` on top of the current ones."""
        return RolloutLogger(self.logger, {**self.fields, **fields})

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        fields = dict(self.fields)
        for key in [k for k in kwargs if k not in _LOGGING_KWARGS]:
            fields[key] = kwargs.pop(key)
        if fields:
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            msg = f"{msg} [{rendered}]"
        return msg, kwargs
