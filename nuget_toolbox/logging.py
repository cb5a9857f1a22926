"""Logging utilities for nuget-toolbox commands.

Standard output carries the JSON results of a command, so every console record
goes to stderr. Verbose runs add the emitting component (``package``,
``resolver``, ``metadata.context`` ...) to each console line.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "nuget_toolbox"

CONSOLE_FORMAT = "[nuget-toolbox] %(levelname)s %(message)s"
VERBOSE_CONSOLE_FORMAT = "[nuget-toolbox] %(levelname)s %(component)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(component)s: %(message)s"


class _ComponentFilter(logging.Filter):
    """Expose the logger name without the package prefix as ``record.component``."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(_LOGGER_NAME + "."):
            name = name[len(_LOGGER_NAME) + 1 :]
        elif name == _LOGGER_NAME:
            name = "toolbox"
        record.component = name
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the nuget_toolbox hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the toolbox logger with stderr output and an optional file sink.

    Calling it again replaces the previous handlers, closing any open log file.
    The file sink's directory is created when missing.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    component = _ComponentFilter()
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.addFilter(component)
    console.setFormatter(logging.Formatter(VERBOSE_CONSOLE_FORMAT if verbose else CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(component)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
