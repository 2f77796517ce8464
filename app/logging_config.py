"""
Logging setup for BudgetFlow.

Everything goes to the console and to ``budgetflow.log``; errors are also
kept in ``errors.log``. Both files live in ``settings.logs_dir`` and rotate by
size. Modules get their logger through ``get_logger(__name__)``.
"""

import logging
import logging.handlers
import os

from app.config import settings

LOGS_DIR = settings.logs_dir
os.makedirs(LOGS_DIR, exist_ok=True)

APP_LOG_FILE = os.path.join(LOGS_DIR, 'budgetflow.log')
ERROR_LOG_FILE = os.path.join(LOGS_DIR, 'errors.log')

FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(message)s'

# Third-party loggers and the level they are held at
LIBRARY_LEVELS = {
    "uvicorn.access": logging.INFO,
    "uvicorn.error": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "multipart": logging.WARNING,
}


def _rotating_file(path: str, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(level: str = "INFO"):
    """
    Install BudgetFlow's handlers on the root logger.

    Calling it again replaces the handlers instead of stacking them.

    Args:
        level: Name of the level for the console and ``budgetflow.log``
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(_rotating_file(APP_LOG_FILE, log_level, max_mb=10, backups=5))
    root.addHandler(_rotating_file(ERROR_LOG_FILE, logging.ERROR, max_mb=5, backups=3))

    for name, library_level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    root.info(f"{settings.app_name} logging at {level.upper()} ({settings.environment}); files in {LOGS_DIR}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


setup_logging(settings.log_level)
