"""
Logging configuration and process-wide fault handlers.

Logs go to the console and to rotating files in the log directory:
- app.log: everything at the configured level
- error.log: errors only
"""

import asyncio
import logging
import logging.handlers
import sys
import threading
from pathlib import Path
from typing import Optional

from .settings_store import CONFIG_DIR

DEFAULT_LOG_DIR = CONFIG_DIR / "logs"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3

NOISY_LOGGERS = ("httpx", "httpcore", "PIL")

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure the root logger with console and rotating file handlers.

    Args:
        log_dir: Directory for app.log and error.log
        level: Root log level

    Returns:
        The root logger
    """
    log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)

        app_handler = logging.handlers.RotatingFileHandler(
            log_dir / "app.log",
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        app_handler.setFormatter(formatter)
        root.addHandler(app_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "error.log",
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)
    except OSError as e:
        root.error(f"Failed to set up file logging in {log_dir}: {e}")
        root.warning("Logging to console only")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logger initialized ({log_dir})")
    return root


def _log_uncaught(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.error(
        f"Uncaught exception: {exc_value}",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def _log_thread_exception(args: threading.ExceptHookArgs):
    if args.exc_type is SystemExit:
        return
    thread_name = args.thread.name if args.thread else "unknown"
    logger.error(
        f"Uncaught exception in thread {thread_name}: {args.exc_value}",
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback)
    )


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict):
    exception = context.get("exception")
    message = context.get("message", "Unhandled error in event loop")
    if exception is not None:
        logger.error(f"Uncaught exception in event loop: {message}", exc_info=exception)
    else:
        logger.error(f"Event loop error: {message}")


def install_fault_handlers(loop: Optional[asyncio.AbstractEventLoop] = None):
    """
    Log uncaught exceptions instead of letting them take the process down.

    Covers the main thread, worker threads and, when given, an asyncio loop.
    """
    sys.excepthook = _log_uncaught
    threading.excepthook = _log_thread_exception
    if loop is not None:
        loop.set_exception_handler(_log_loop_exception)
