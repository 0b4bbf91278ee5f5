"""Logging for taracode.

Records go to two places: terse lines on stderr (so they never interleave
with streamed answers on stdout) and full records in a rotating file under
``~/.taracode/logs``. ``TARACODE_LOG_FILE`` moves the file, or disables it
with ``off``.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

__all__ = ["setup_logger", "get_logger", "resolve_log_file"]

LOG_DIR = Path("~/.taracode/logs").expanduser()
DEFAULT_LOG_FILE = LOG_DIR / "taracode.log"
LOG_FILE_ENV = "TARACODE_LOG_FILE"
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3

# HTTP and LLM client libraries log every request at INFO.
_NOISY_LOGGERS = ("litellm", "LiteLLM", "httpx", "httpcore", "urllib3", "openai")
_DISABLED = {"off", "none", "false", "0"}


def resolve_log_file(log_file: Union[str, Path, bool, None] = None) -> Optional[Path]:
    """Where file records go: an explicit target, then the env var, then the default.

    ``False`` (or ``off`` in the env var) disables file logging.
    """
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        env_value = os.environ.get(LOG_FILE_ENV, "").strip()
        if not env_value:
            return DEFAULT_LOG_FILE
        if env_value.lower() in _DISABLED:
            return None
        return Path(env_value).expanduser()
    return Path(log_file).expanduser()


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _file_handler(path: Path) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
    except OSError as e:
        logging.getLogger(__name__).warning("File logging disabled (%s): %s", path, e)
        return None
    # The file keeps INFO even when the console shows warnings only.
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logger(
    name: str = "taracode",
    verbose: bool = False,
    log_file: Union[str, Path, bool, None] = None,
) -> logging.Logger:
    """Configure the ``taracode`` logger tree and return its root.

    Safe to call again (``taracode config`` after ``run``, tests): existing
    handlers are closed and replaced.
    """
    logger = logging.getLogger(name)
    console_level = logging.INFO if verbose else logging.WARNING

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.propagate = False
    logger.addHandler(_console_handler(console_level))

    path = resolve_log_file(log_file)
    file_handler = _file_handler(path) if path is not None else None
    if file_handler is not None:
        logger.addHandler(file_handler)
        logger.setLevel(logging.INFO)
    else:
        logger.setLevel(console_level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
