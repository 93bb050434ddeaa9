"""
Logging setup for dashboard_sync.

All module loggers descend from the "dashboard_sync" logger configured
here. Console output goes to stderr, optionally colored; a dated log file
in <config_dir>/logs always records DEBUG output. OAuth tokens are masked
on every handler because Google error messages and request URIs can
carry them.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path

from dashboard_sync.utils.paths import resolve_config_dir

LOGGER_NAME = "dashboard_sync"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ENV_LOG_LEVEL = "DASHBOARD_SYNC_LOG_LEVEL"
ENV_DEBUG = "DASHBOARD_SYNC_DEBUG"
ENV_LOG_FILE = "DASHBOARD_SYNC_LOG_FILE"

LOG_FILE_PREFIX = "dashboard_sync_"

# Third-party loggers that are noisy at INFO during discovery and transport
QUIET_LOGGERS = ("googleapiclient.discovery", "googleapiclient.discovery_cache")

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Google access tokens, refresh tokens and token query parameters
_TOKEN_PATTERNS = (
    re.compile(r"ya29\.[\w.-]+"),
    re.compile(r"1//[\w.-]+"),
    re.compile(r"((?:access|refresh)_token[\"']?\s*[=:]\s*[\"']?)([\w./-]+)"),
    re.compile(r"(Bearer\s+)([\w./-]+)"),
)


def redact_token(token: str) -> str:
    """Mask a token, keeping its first and last 4 characters."""
    if len(token) <= 8:
        return "*" * len(token)
    return token[:4] + "*" * (len(token) - 8) + token[-4:]


def redact(text: str) -> str:
    """Mask every OAuth token found in a piece of text."""
    for pattern in _TOKEN_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda m: m.group(1) + redact_token(m.group(2)), text)
        else:
            text = pattern.sub(lambda m: redact_token(m.group(0)), text)
    return text


class TokenRedactingFilter(logging.Filter):
    """Handler filter that masks OAuth tokens in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class ColoredFormatter(logging.Formatter):
    """
    Formatter adding ANSI colors per level.

    Colors are used only on a terminal, and never when NO_COLOR is set or
    TERM is "dumb".
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        if not getattr(sys.stderr, "isatty", None) or not sys.stderr.isatty():
            return False
        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False
        return os.environ.get("TERM", "") != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        if color is None:
            return super().format(record)

        # Other handlers must still see the plain record
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        colored.msg = f"{color}{record.getMessage()}{self.RESET}"
        colored.args = None
        return super().format(colored)


def get_log_level_from_env() -> int:
    """
    Get the logging level from the environment.

    DASHBOARD_SYNC_DEBUG takes precedence over DASHBOARD_SYNC_LOG_LEVEL;
    unknown level names fall back to INFO.
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG
    return LEVELS.get(os.environ.get(ENV_LOG_LEVEL, "INFO").upper(), logging.INFO)


def get_log_file_path(log_dir: Path | None = None) -> Path | None:
    """
    Get the path of today's log file.

    DASHBOARD_SYNC_LOG_FILE overrides the location; "none", "disabled" or
    an empty value turn file logging off.

    Returns:
        Path to the log file, or None if file logging is disabled
    """
    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file is not None:
        if log_file.lower() in ("none", "disabled", ""):
            return None
        return Path(log_file)

    directory = log_dir or resolve_config_dir() / "logs"
    return directory / f"{LOG_FILE_PREFIX}{datetime.now().strftime('%Y%m%d')}.log"


def _console_handler(level: int, verbose: bool, use_colors: bool) -> logging.Handler:
    fmt = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if use_colors:
        handler.setFormatter(ColoredFormatter(fmt, DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    handler.addFilter(TokenRedactingFilter())
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    # The file always keeps the full DEBUG trail
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT))
    handler.addFilter(TokenRedactingFilter())
    return handler


def setup_logging(
    level: int | None = None,
    verbose: bool = False,
    log_dir: Path | None = None,
    log_file: Path | None = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the dashboard_sync logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Console level; taken from the environment when None
        verbose: Use DEBUG and the verbose format
        log_dir: Directory of the dated log file
        log_file: Explicit log file, overriding log_dir
        enable_file_logging: Whether to write a log file at all
        use_colors: Color console output when the terminal supports it

    Returns:
        The dashboard_sync package logger
    """
    if level is None:
        level = get_log_level_from_env()
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    logger.addHandler(_console_handler(level, verbose, use_colors))

    if enable_file_logging:
        file_path = log_file or get_log_file_path(log_dir)
        if file_path:
            try:
                logger.addHandler(_file_handler(file_path))
                logger.setLevel(logging.DEBUG)
                logger.debug(f"Log file: {file_path}")
            except OSError as e:
                logger.warning(f"Could not create log file {file_path}: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def cleanup_old_logs(log_dir: Path | None = None, keep_count: int = 10) -> int:
    """
    Delete old dated log files, keeping the keep_count newest.

    A keep_count of 0 or less disables cleanup.

    Returns:
        Number of files deleted
    """
    if keep_count <= 0:
        return 0

    logs_dir = log_dir or resolve_config_dir() / "logs"
    if not logs_dir.exists():
        return 0

    logs = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    deleted = 0
    for old_log in logs[keep_count:]:
        try:
            old_log.unlink()
            deleted += 1
        except OSError as e:
            logging.getLogger(LOGGER_NAME).debug(f"Could not delete {old_log}: {e}")
    return deleted


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the dashboard_sync logger."""
    if not name.startswith(LOGGER_NAME):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_log_level(level: int) -> None:
    """Change the console level at runtime; the log file stays at DEBUG."""
    logger = logging.getLogger(LOGGER_NAME)
    has_file = False
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            has_file = True
        else:
            handler.setLevel(level)
    logger.setLevel(logging.DEBUG if has_file else level)


def disable_logging() -> None:
    logging.getLogger(LOGGER_NAME).disabled = True


def enable_logging() -> None:
    logging.getLogger(LOGGER_NAME).disabled = False


__all__ = [
    "setup_logging",
    "cleanup_old_logs",
    "get_logger",
    "set_log_level",
    "disable_logging",
    "enable_logging",
    "get_log_level_from_env",
    "get_log_file_path",
    "redact",
    "redact_token",
    "ColoredFormatter",
    "TokenRedactingFilter",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
]
