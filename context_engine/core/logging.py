"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the engine with:
- JSON output in production
- Pretty console output in development
- Context binding for per-turn tracing (session_id, turn_number)
- File output to logs/ directory (run-based rotation)
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List

import structlog
from structlog.typing import Processor

from context_engine.core.config import settings


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent.

    Args:
        logs_dir: Directory containing log files
        keep: Number of recent log files to retain
    """
    log_files = sorted(
        logs_dir.glob("context_engine_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    for old_file in log_files[max(keep, 0):]:
        try:
            os.remove(old_file)
        except OSError:
            pass  # Ignore permission errors, etc.


def configure_logging(
    log_sessions_to_keep: int | None = None, logs_dir: Path | None = None
) -> None:
    """Configure structlog for the application.

    Call this once at startup, before any logging.

    Creates a new timestamped log file per run and culls old logs,
    keeping only the most recent N runs.

    Args:
        log_sessions_to_keep: Number of recent run logs to retain
            (default: settings.log_sessions_to_keep)
        logs_dir: Directory for log files (default: ./logs)

    Outputs:
        - Console (colored in debug, JSON otherwise)
        - File: logs/context_engine_YYYYMMDD_HHMMSS.log
    """
    keep = log_sessions_to_keep or settings.log_sessions_to_keep

    logs_dir = logs_dir or Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    # keep-1 to make room for the new file
    _cull_old_logs(logs_dir, keep=keep - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"context_engine_{timestamp}.log"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Clear existing handlers (reconfiguration in tests/long-running processes)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Bound structlog logger

    Usage:
        from context_engine.core.logging import get_logger

        log = get_logger(__name__)
        log.info("something_happened", key="value")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

        bind_context(request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables from the logging context."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def bound_context(**kwargs) -> Iterator[None]:
    """Bind context variables for the duration of a block.

    Unlike clear_context(), only the given keys are reset on exit, so a
    caller's own bindings (e.g. request_id) survive:

        with bound_context(session_id=session_id):
            ...
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
