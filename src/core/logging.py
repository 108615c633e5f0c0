"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the engine with:
- JSON output in production
- Pretty console output in development
- Context binding for request tracing (request_id, session_id)
- Optional file output to logs/ directory (one file per process run)

User-submitted text is never logged verbatim by engine modules; they log
lengths, layers, severities and provider identities instead.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from src.core.config import settings


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent.

    Args:
        logs_dir: Directory containing log files
        keep: Number of recent log files to retain
    """
    log_files = sorted(
        logs_dir.glob("reflection_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    for old_file in log_files[keep:]:
        try:
            os.remove(old_file)
        except OSError:
            pass  # Ignore permission errors, etc.


def configure_logging(
    log_runs_to_keep: int = 5,
    logs_dir: Optional[Path] = Path("logs"),
    level: int = logging.INFO,
) -> None:
    """Configure structlog for the application.

    Call this once at application startup, before any logging.

    Args:
        log_runs_to_keep: Number of recent run logs to retain (default: 5)
        logs_dir: Directory for the per-run log file; None disables file output
        level: Minimum log level for both structlog and stdlib handlers

    Outputs:
        - Console (colored in dev, JSON in production)
        - File: logs/reflection_YYYYMMDD_HHMMSS.log
    """
    shared_processors: List[Processor] = [
        # Request-scoped context (request_id, session_id)
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

    # Clear any existing handlers first (needed for reconfiguration in tests)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if logs_dir is not None:
        logs_dir.mkdir(exist_ok=True)
        # keep-1 to make room for the new file
        _cull_old_logs(logs_dir, keep=max(log_runs_to_keep - 1, 0))

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_handler = logging.FileHandler(
            logs_dir / f"reflection_{timestamp}.log", mode="w"
        )
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from src.core.logging import get_logger

        log = get_logger(__name__)
        log.info("something_happened", key="value")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

        bind_context(session_id=session.id, request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables from the logging context.

    Call after request completion to prevent context leakage between requests.
    """
    structlog.contextvars.clear_contextvars()
