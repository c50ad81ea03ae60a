"""
Rich-based logger with phone number and conversation context support.

Provides context-aware logging: each message is prefixed with the business
phone number id and the conversation id of the event being dispatched.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from wacloud.core.config.settings import settings


class CompactFormatter(logging.Formatter):
    """Custom formatter that shortens long module names for better readability."""

    def format(self, record):
        if record.name.startswith("wacloud."):
            # wacloud.core.events.event_dispatcher -> events.event_dispatcher
            parts = record.name.split(".")
            if len(parts) > 2:
                record.name = ".".join(parts[-2:])

        return super().format(record)


_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "debug": "dim white",
    }
)
_console = Console(theme=_theme)


class ContextLogger:
    """
    Logger wrapper that adds phone number and conversation context to messages.

    Context is added as a message prefix instead of through the format string,
    so third-party handlers keep working unchanged.
    """

    def __init__(
        self,
        logger: logging.Logger,
        phone_number_id: str | None = None,
        conversation_id: str | None = None,
    ):
        self.logger = logger
        self.phone_number_id = phone_number_id or "---"
        self.conversation_id = conversation_id or "---"

    def _format_message(self, message: str) -> str:
        """Add context prefix to message."""
        # Fresh context on each call: the dispatcher rebinds it per event
        from .context import (
            get_current_conversation_context,
            get_current_phone_context,
        )

        phone = get_current_phone_context() or self.phone_number_id
        conversation = get_current_conversation_context() or self.conversation_id

        if phone and phone != "---":
            if conversation and conversation != "---":
                return f"[P:{phone}][C:{conversation}] {message}"
            return f"[P:{phone}] {message}"
        elif conversation and conversation != "---":
            return f"[C:{conversation}] {message}"
        return message

    def _log(self, level: int, message: str, *args, **kwargs) -> None:
        self.logger.log(level, self._format_message(message), *args, **kwargs)

    def debug(self, message: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self._log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self._log(logging.ERROR, message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs) -> None:
        self._log(logging.CRITICAL, message, *args, **kwargs)

    def exception(self, message: str, *args, exc_info=True, **kwargs) -> None:
        self._log(logging.ERROR, message, *args, exc_info=exc_info, **kwargs)

    def bind(self, **kwargs) -> ContextLogger:
        """
        Create a new ContextLogger with additional or updated context.

        Args:
            **kwargs: phone_number_id and/or conversation_id

        Returns:
            New ContextLogger instance with updated context
        """
        return ContextLogger(
            self.logger,
            phone_number_id=kwargs.get("phone_number_id", self.phone_number_id),
            conversation_id=kwargs.get("conversation_id", self.conversation_id),
        )


_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_CONSOLE_FORMAT = "[%(name)s] %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _daily_file_handler(log_dir: str, fmt: str) -> logging.FileHandler:
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, f"wacloud_{datetime.now():%Y%m%d}.log")
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(CompactFormatter(fmt))
    return handler


def setup_logging(
    *,
    level: str = "INFO",
    mode: str = "PROD",
    log_dir: str | None = None,
    console_fmt: str | None = None,
    file_fmt: str | None = None,
) -> None:
    """
    Route the root logger through Rich, plus a daily file in DEV mode.

    Unknown levels fall back to INFO. A log file is only written when mode is
    "DEV" and log_dir is given; otherwise output goes to the console only.
    """
    lvl = level.upper() if level.upper() in _LEVELS else "INFO"

    console = RichHandler(
        console=_console,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_time=True,
        show_level=True,
        markup=False,
    )
    # level and time come from Rich itself
    console.setFormatter(CompactFormatter(console_fmt or _CONSOLE_FORMAT))
    handlers: list[logging.Handler] = [console]

    if mode.upper() == "DEV" and log_dir:
        file_handler = _daily_file_handler(log_dir, file_fmt or _FILE_FORMAT)
        handlers.append(file_handler)
        _console.print(f"[green]DEV logging:[/] console + {file_handler.baseFilename}")

    logging.basicConfig(level=lvl, handlers=handlers, force=True)
    logging.getLogger("wacloud.logging").info(f"📝 Logging ready at {lvl} ({mode})")


def setup_app_logging() -> None:
    """Initialize application logging from environment settings."""
    setup_logging(
        level=settings.log_level,
        mode="DEV" if settings.is_development else "PROD",
        log_dir=settings.log_dir if settings.is_development else None,
    )


def get_logger(name: str) -> ContextLogger:
    """
    Get a logger that automatically uses dispatch context variables.

    Args:
        name: Logger name (usually __name__)

    Returns:
        ContextLogger instance
    """
    from .context import get_current_conversation_context, get_current_phone_context

    return ContextLogger(
        logging.getLogger(name),
        phone_number_id=get_current_phone_context(),
        conversation_id=get_current_conversation_context(),
    )
