"""Logging for the strata controllers: rich console output plus an optional log file."""
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

ROOT_LOGGER = "strata"
DEFAULT_LOG_FILE = Path("/var/log/strata/strata.log")
FALLBACK_LOG_FILE = Path("/tmp/strata.log")
FILE_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"

_file_handler: Optional[logging.FileHandler] = None


def _writable_log_path(requested: Optional[str]) -> Path:
    path = Path(requested) if requested else DEFAULT_LOG_FILE
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        path = FALLBACK_LOG_FILE
    return path


def setup_file_logging(log_file: str = None, verbose: bool = False):
    """Mirror every ``strata.*`` record into a log file.

    Called once per process by the long-running commands. The worker
    thread name is part of each line so interleaved reconciles can be
    told apart. Falls back to /tmp when the log directory is not writable.
    """
    global _file_handler

    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    if _file_handler is not None:
        _file_handler.setLevel(level)
        return

    path = _writable_log_path(log_file)
    _file_handler = logging.FileHandler(path)
    _file_handler.setLevel(level)
    _file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(_file_handler)
    root.info(f"writing logs to {path}")


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` with a rich console handler attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger
