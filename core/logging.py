"""
Logging Module - Centralized logging configuration
=================================================

Every module obtains its logger through :func:`get_logger`, which places it
under the ``site_chatbot`` namespace so a single :func:`setup_logging` call
configures console output, the plain file log and the JSON error log.
"""

import json
import logging
import sys
import contextvars
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

ROOT_LOGGER_NAME = "site_chatbot"


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Each record becomes one JSON object per line, which keeps the error
    log greppable and easy to ship to an aggregator.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored console formatter using ANSI escape codes."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        formatted = (
            f"{color}{self.BOLD}[{record.levelname}]{self.RESET} "
            f"{timestamp} | {record.name}:{record.lineno} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class ContextFilter(logging.Filter):
    """
    Logging filter that attaches the current context to records.

    The web layer sets ``session_id`` here while handling a chat
    message so every line logged during that request carries it.
    Context lives in a ``ContextVar``, so concurrent requests served
    by one event loop each see their own values.
    """

    _context: contextvars.ContextVar = contextvars.ContextVar("site_chatbot_log_context", default=None)

    @classmethod
    def set_context(cls, **kwargs) -> None:
        data = dict(cls._context.get() or {})
        data.update(kwargs)
        cls._context.set(data)

    @classmethod
    def clear_context(cls) -> None:
        cls._context.set(None)

    @classmethod
    def get_context(cls) -> Dict[str, Any]:
        return dict(cls._context.get() or {})

    def filter(self, record: logging.LogRecord) -> bool:
        data = self._context.get()
        if data:
            record.extra_data = data.copy()
        return True


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges its bound context into ``extra``."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, logging.Logger] = {}
_configured = False


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    json_format: bool = False,
    console_output: bool = True
) -> None:
    """
    Set up logging configuration for the application.

    This should be called once at application startup; later calls
    are ignored.

    Args:
        log_dir: Directory for log files (optional)
        log_level: Minimum log level to capture
        json_format: Use JSON format for the main file log
        console_output: Also output to console

    Example:
        setup_logging(log_dir="/var/log/site-chatbot", log_level="DEBUG")
    """
    global _configured

    if _configured:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    context_filter = ContextFilter()

    if console_output:
        # The TUI owns stdout, so it passes console_output=False
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(ColoredFormatter())
        console_handler.addFilter(context_filter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / "site-chatbot.log", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(context_filter)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
                )
            )
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.addFilter(context_filter)
        error_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(error_handler)

    _configured = True


def get_logger(name: str, **extra) -> LoggerAdapter:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name, e.g. ``"rules.store"``
        **extra: Extra context to include in all log messages

    Returns:
        LoggerAdapter instance

    Example:
        logger = get_logger("services.chat_session", component="chat")
        logger.info("Session started")
    """
    prefix = ROOT_LOGGER_NAME + "."
    full_name = name if name.startswith(ROOT_LOGGER_NAME) else prefix + name

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return LoggerAdapter(_loggers[full_name], extra)


def set_log_context(**kwargs) -> None:
    """
    Set logging context for the current thread or task.

    Example:
        set_log_context(session_id="3f2a...")
        logger.info("Reply sent")  # record carries the session id
    """
    ContextFilter.set_context(**kwargs)


def clear_log_context() -> None:
    """Clear logging context for the current thread or task."""
    ContextFilter.clear_context()


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the current logging context."""
    return ContextFilter.get_context()
