"""
Logging configuration for expertdeck.

All loggers live under the "expertdeck" namespace. The tower owns the
terminal while it runs, so its logging goes to a file only; CLI commands
log warnings to the console through Rich.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler

ROOT_LOGGER_NAME = "expertdeck"
DEFAULT_LOG_DIR = Path.home() / ".expertdeck" / "logs"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the expertdeck namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the expertdeck root logger.

    Existing handlers are removed so repeated calls don't duplicate output.

    Args:
        level: Log level for the root expertdeck logger
        log_file: Optional file to append log records to
        console: Whether to log to stderr
        rich_console: Use RichHandler for console output
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    if console:
        handler: logging.Handler
        if rich_console:
            handler = RichHandler(show_path=False, rich_tracebacks=True)
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger


def setup_tower_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """File-only logging for the TUI tower."""
    if log_file is None:
        log_file = DEFAULT_LOG_DIR / "tower.log"
    setup_logging(level=level, log_file=log_file, console=False)
    return get_logger("tower")


def setup_cli_logging() -> logging.Logger:
    """Console logging for one-shot CLI commands (warnings and above)."""
    setup_logging(level=logging.WARNING, console=True)
    return get_logger("cli")


class StructuredLogger:
    """Thin wrapper that appends key=value context to every message.

    Example:
        log = get_structured_logger("launch").with_context(expert=3)
        log.info("worktree ready", branch="feature-x")
        # -> "worktree ready expert=3 branch=feature-x"
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self._logger = logger
        self._context = dict(context or {})

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        merged = dict(self._context)
        merged.update(kwargs)
        return StructuredLogger(self._logger, merged)

    def _format(self, msg: str, kwargs: Dict[str, Any]) -> str:
        fields = dict(self._context)
        fields.update(kwargs)
        if not fields:
            return msg
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{msg} {suffix}"

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.debug(self._format(msg, kwargs))

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.info(self._format(msg, kwargs))

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._logger.warning(self._format(msg, kwargs))

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.error(self._format(msg, kwargs))

    def exception(self, msg: str, **kwargs: Any) -> None:
        self._logger.exception(self._format(msg, kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))
