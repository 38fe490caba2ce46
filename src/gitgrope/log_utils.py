import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from gitgrope.constants import (
    DEBUG_LOG_FORMAT,
    INFO_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)

# Kept module-global so reconfiguration can replace the previous handlers
_file_handler: Optional[RotatingFileHandler] = None
_console_handler: Optional[RichHandler] = None
_file_json = False


def _resolve_level(level_name: str) -> Optional[int]:
    level = getattr(logging, str(level_name).upper(), None)
    return level if isinstance(level, int) else None


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Each entry carries ``time`` (ISO 8601, UTC), ``level`` and ``msg``; a
    logged exception is added as ``error``.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "time": created.isoformat(),
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter_for(handler: logging.Handler, level: int) -> logging.Formatter:
    if isinstance(handler, RichHandler):
        return logging.Formatter("%(message)s")
    if handler is _file_handler and _file_json:
        return JsonFormatter()
    if level >= logging.INFO:
        return logging.Formatter(INFO_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    return logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the gitgrope logger and reconfigure all attached handlers.

    If `level_name` is not a valid logging level name (e.g., "DEBUG", "INFO"), the function logs a warning and leaves the current configuration unchanged.

    Behavior:
    - Sets the logger's level and each handler's level to the resolved level.
    - RichHandler keeps a message-only formatter and a JSON file handler keeps
      JsonFormatter; other handlers switch between INFO_LOG_FORMAT and
      DEBUG_LOG_FORMAT depending on the new level.

    Parameters:
        level_name (str): Case-insensitive name of the desired logging level (e.g., "debug", "INFO").
    """
    level = _resolve_level(level_name)
    if level is None:
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(_formatter_for(handler, level))

    logger.debug(f"Log level set to {logging.getLevelName(level)}")


def add_file_logging(
    log_file: Path,
    level_name: str = "INFO",
    console: bool = False,
    json_format: bool = True,
) -> None:
    """
    Route gitgrope logging into a size-rotated log file.

    Creates the parent directory if necessary and attaches a RotatingFileHandler
    writing to `log_file`. The handler level comes from `level_name` (INFO for
    invalid names). Any file handler previously installed by this module is
    closed and replaced. Unless `console` is true the console handler is
    detached, making the file the sole log sink. Entries are written as one
    JSON object per line unless `json_format` is false.

    Parameters:
        log_file (Path): Path of the log file to write.
        level_name (str): Log level for the file handler.
        console (bool): Keep logging to the console as well.
        json_format (bool): Write JSON lines instead of plain text.
    """
    global _file_handler, _file_json
    if _file_handler and _file_handler in logger.handlers:
        logger.removeHandler(_file_handler)
        _file_handler.close()

    log_file = Path(log_file).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_log_level = _resolve_level(level_name)
    if file_log_level is None:
        logger.warning(
            f"Invalid file log level name: {level_name}. Defaulting to INFO."
        )
        file_log_level = logging.INFO

    _file_json = json_format
    _file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    _file_handler.setFormatter(_formatter_for(_file_handler, file_log_level))
    _file_handler.setLevel(file_log_level)
    logger.addHandler(_file_handler)

    if not console and _console_handler and _console_handler in logger.handlers:
        logger.removeHandler(_console_handler)

    logger.setLevel(min(logger.level, file_log_level))
    logger.info(
        f"File logging enabled at {log_file} with level {logging.getLevelName(file_log_level)}"
    )


def _initialize_logger() -> None:
    """
    Initialize the gitgrope logger with a console RichHandler and an initial log level.

    Removes any existing handlers, disables propagation to the root logger and
    attaches a RichHandler for console output. The initial level is read from
    the environment variable named by LOG_LEVEL_ENV_VAR (INFO when unset or
    invalid). File logging is enabled separately through add_file_logging().
    """
    global _console_handler
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    _console_handler = RichHandler(
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )

    default_log_level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    initial_level = _resolve_level(default_log_level)
    if initial_level is None:
        logger.warning(
            f"Invalid {LOG_LEVEL_ENV_VAR}={default_log_level}; defaulting to INFO."
        )
        initial_level = logging.INFO

    _console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_console_handler)

    logger.setLevel(initial_level)
    _console_handler.setLevel(initial_level)


_initialize_logger()
