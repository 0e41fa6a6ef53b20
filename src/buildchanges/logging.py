"""Logging configuration for the buildchanges CLI."""

import logging
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are noisy at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def resolve_level(verbosity: int = 0, quiet: bool = False, debug: bool = False) -> int:
    """Map CLI flags to a log level.

    Flag precedence is quiet > debug > verbosity.
    """
    if quiet:
        return LogLevel.QUIET
    if debug or verbosity >= 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO = sys.stderr,
    debug: bool = False,
) -> None:
    """Send log records to ``stream`` through Rich.

    Timestamps and source locations are only shown with ``debug``, which
    also lets the HTTP client log each request.
    """
    console = Console(file=stream, force_terminal=not no_color, no_color=no_color)
    logging.basicConfig(
        level=resolve_level(verbosity=verbosity, quiet=quiet, debug=debug),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=debug, show_path=debug)],
        force=True,
    )

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)
