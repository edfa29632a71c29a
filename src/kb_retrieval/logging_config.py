"""
Logging setup for the command line and server entry points.

Library modules only create loggers via ``logging.getLogger(__name__)``;
handlers are attached here so that importing the package never configures
logging as a side effect.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "kb_retrieval"


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to an additional plain-text log file
        console: Optional rich console to render to (stderr by default)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on repeated setup
    logger.handlers.clear()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(level)
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
