"""Logging setup: every record goes to a Rich handler on stderr."""

import logging
from logging.config import dictConfig

from rich.console import Console
from rich.logging import RichHandler


def _rich_handler(level: str = "NOTSET") -> logging.Handler:
    return RichHandler(
        level=level,
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )


def setup_logging(verbose: bool = False) -> None:
    """Route all log records to a Rich handler on stderr.

    stdout stays reserved for command output (cat writes object bytes there).
    """
    level = "DEBUG" if verbose else "WARNING"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "()": _rich_handler,
                    "formatter": "plain",
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                "httpx": {"level": "DEBUG" if verbose else "WARNING"},
                "httpcore": {"level": "INFO" if verbose else "WARNING"},
            },
        }
    )
