"""
Logging setup for the detection service.

The detection code under ``src`` and the HTTP/alerting code under ``backend``
log through module loggers (``logging.getLogger(__name__)``). This module
attaches a console handler and one shared rotating file to their package
loggers, so every module logger inherits the same output.
"""

import logging
import logging.handlers
from typing import Iterable, Optional

from .config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGERS = ("src", "backend")


def _build_handlers(level: str, log_file_name: str) -> list:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    file_handler = logging.handlers.RotatingFileHandler(
        config.logs_dir / log_file_name,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    for handler in (console_handler, file_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return [console_handler, file_handler]


def setup_logging(
    logger_names: Iterable[str] = PACKAGE_LOGGERS,
    level: Optional[str] = None,
    log_file_name: str = "medwatch.log",
) -> None:
    """
    Configure the package loggers.

    Args:
        logger_names: Package loggers to configure
        level: Log level (defaults to config.log_level)
        log_file_name: File under config.logs_dir shared by all loggers

    Loggers that already have handlers are left untouched, so repeated
    calls do not duplicate output.
    """
    level = (level or config.log_level).upper()
    pending = [logging.getLogger(name) for name in logger_names]
    pending = [lg for lg in pending if not lg.handlers]
    if not pending:
        return

    handlers = _build_handlers(level, log_file_name)
    for lg in pending:
        lg.setLevel(level)
        lg.propagate = False
        for handler in handlers:
            lg.addHandler(handler)
