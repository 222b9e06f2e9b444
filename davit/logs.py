"""Logging setup: rich console output by default, JSON lines when DAVIT_JSON_LOGS is set."""

import contextlib
import logging
import sys
from typing import Iterator, Optional

from pythonjsonlogger.json import JsonFormatter
from rich.console import Console
from rich.logging import RichHandler

from davit.settings import DavitSettings

LOGGER_NAME = "davit"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(threadName)s] %(message)s"


def setup_logging(settings: Optional[DavitSettings] = None) -> logging.Logger:
    """
    Configure the "davit" logger tree and return its root.

    With DAVIT_LOG_FILE set, records go to that file so nothing is written
    over the live dashboard.
    """
    settings = settings or DavitSettings()
    handler: logging.Handler
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        handler.setFormatter(JsonFormatter(JSON_FORMAT) if settings.json_logs else logging.Formatter(FILE_FORMAT))
    elif settings.json_logs:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter(JSON_FORMAT))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)

    logger = logging.getLogger(LOGGER_NAME)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.setLevel(settings.log_level)
    logger.propagate = False
    return logger


@contextlib.contextmanager
def logging_to_console(console: Console) -> Iterator[None]:
    """
    Send terminal log output through console while the block runs.

    Used while the dashboard owns the screen: records are rendered by the
    live display instead of being written over it. File handlers are kept.
    """
    root = logging.getLogger(LOGGER_NAME)
    swapped = [h for h in root.handlers if not isinstance(h, logging.FileHandler)]
    if not swapped:
        yield
        return
    live_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    for handler in swapped:
        root.removeHandler(handler)
    root.addHandler(live_handler)
    try:
        yield
    finally:
        root.removeHandler(live_handler)
        for handler in swapped:
            root.addHandler(handler)
