import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path

from .config import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def setup_logging(verbose: bool = False) -> None:
    """
    Send bridge logs to a rotating file and warnings to stderr.

    stdout is reserved for tool output, so the console handler always writes
    to stderr; ``verbose`` lowers its threshold to DEBUG. Does nothing when
    the root logger already has handlers (embedding host, pytest).
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    file_level = _level(os.environ.get("LOG_LEVEL", config.LOGGING.LEVEL), logging.INFO)
    console_level = logging.DEBUG if verbose else _level(config.LOGGING.CONSOLE_LEVEL, logging.WARNING)

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
    else:
        log_path = Path(config.SYSTEM.DATA_DIR) / "logs" / config.LOGGING.FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=int(config.LOGGING.MAX_BYTES),
        backupCount=int(config.LOGGING.BACKUP_COUNT),
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)

    root_logger.setLevel(min(file_level, console_level))
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
