"""
Centralized logging configuration using structlog
"""

import base64
import logging
import secrets
import sys
import time
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from .config import Settings

# Context variables for per-client operation tracking
operation_id_ctx: ContextVar[str | None] = ContextVar("operation_id", default=None)
participant_id_ctx: ContextVar[str | None] = ContextVar("participant_id", default=None)


class OperationContextFilter:
    """Add operation context to log records."""

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        """Add operation context to the event dict."""
        # Required by the structlog processor interface
        _ = logger, method_name

        operation_id = operation_id_ctx.get()
        participant_id = participant_id_ctx.get()

        if operation_id:
            event_dict["operation_id"] = operation_id

        if participant_id:
            event_dict["participant_id"] = participant_id

        return event_dict


def resolve_log_level(name: str) -> int:
    """Map a level name such as ``"info"`` to its numeric logging level."""
    levels = logging.getLevelNamesMapping()
    try:
        return levels[name.upper()]
    except KeyError as e:
        raise ValueError(f"Unknown log level: {name}") from e


def configure_logging(settings: "Settings | None" = None) -> None:
    """Configure structlog for board store clients.

    Args:
        settings: Source of ``debug`` and ``log_level``; defaults to the global
            settings. ``debug`` selects console output at DEBUG level, otherwise
            JSON lines are written at ``log_level``.

    Raises:
        ValueError: If ``log_level`` is not a standard logging level name
    """
    if settings is None:
        from .config import settings

    log_level = resolve_log_level(settings.log_level)
    debug = settings.debug
    if debug:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        OperationContextFilter(),
        structlog.processors.TimeStamper(fmt="ISO", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def generate_operation_id() -> str:
    """Generate a compact operation ID from a microsecond timestamp and randomness.

    Format: 11-character base64 string (e.g., 'Ab3X9mF2xYz')
    """
    timestamp_us = int(time.time() * 1_000_000)
    random_bytes = secrets.token_bytes(2)

    combined_bytes = timestamp_us.to_bytes(8, byteorder="big") + random_bytes

    return base64.urlsafe_b64encode(combined_bytes).decode("ascii").rstrip("=")


def set_operation_context(
    operation_id: str | None = None, participant_id: str | None = None
) -> None:
    """Set operation context variables.

    Args:
        operation_id: Operation ID to set (generates one if None)
        participant_id: Participant the client acts for
    """
    if operation_id is None:
        operation_id = generate_operation_id()

    operation_id_ctx.set(operation_id)
    if participant_id is not None:
        participant_id_ctx.set(participant_id)


def clear_operation_context() -> None:
    """Clear operation context variables."""
    operation_id_ctx.set(None)
    participant_id_ctx.set(None)


def get_operation_id() -> str | None:
    """Get the current operation ID."""
    return operation_id_ctx.get()


def get_participant_id() -> str | None:
    """Get the participant bound to the current context."""
    return participant_id_ctx.get()
