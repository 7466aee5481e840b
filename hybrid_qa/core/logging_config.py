"""
Logging configuration for Hybrid QA.

JSON lines in CI, readable text during development. Every record can carry
the flow context (engine, flow name, step index) of the backend that emitted
it, either through `get_logger(name, **context)` or `extra={"metadata": ...}`.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config

# Record attributes promoted to top-level fields of a structured entry.
CONTEXT_FIELDS = ("engine", "flow_name", "step_index", "duration", "status")

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
DEBUG_FILE_MAX_BYTES = 50 * 1024 * 1024

# Third-party loggers that flood DEBUG output.
QUIET_LOGGERS = ("asyncio", "aiohttp.access", "PIL")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Flow context fields present on a record."""
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if hasattr(record, name)}


class _RunFormatter(logging.Formatter):
    """Base formatter that tags records with the run they belong to."""

    def __init__(self, run_id: str):
        super().__init__()
        self.run_id = run_id

    @staticmethod
    def timestamp() -> datetime:
        return datetime.utcnow()


class StructuredFormatter(_RunFormatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.timestamp().isoformat() + "Z",
            "level": record.levelname,
            "component": record.name,
            "run_id": self.run_id,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))

        metadata = getattr(record, "metadata", None)
        if metadata is not None:
            entry["metadata"] = metadata
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(_RunFormatter):
    """Single-line text output for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = self.timestamp().strftime("%Y-%m-%d %H:%M:%S")
        parts = [
            f"[{stamp}] {record.levelname:8} {record.name:20} | {record.getMessage()}"
            f" (run: {self.run_id[:8]})"
        ]

        fields = {**record_context(record), **(getattr(record, "metadata", None) or {})}
        if fields:
            parts.append(" | ".join(f"{key}={value}" for key, value in fields.items()))

        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _file_handler(
    path: Path, max_bytes: int, backups: int, formatter: logging.Formatter, level: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(config: Config, run_id: str) -> logging.Logger:
    """
    Install handlers on the root logger for one run.

    A console handler writing to stderr is always installed, so stdout stays
    free for CLI output. Outside CI a rotating run log is added, plus a
    separate debug log when DEBUG is enabled.

    Args:
        config: Configuration with log level, format and directories
        run_id: Identifier attached to every record

    Returns:
        The configured root logger
    """
    level = getattr(logging, config.log_level)
    formatter: logging.Formatter = (
        StructuredFormatter(run_id) if config.log_format == "json" else TextFormatter(run_id)
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(level)
    handlers: List[logging.Handler] = [console]

    if not config.is_ci_mode:
        handlers.append(
            _file_handler(config.get_log_file_path(), LOG_FILE_MAX_BYTES, 5, formatter, level)
        )
        if config.debug_enabled:
            handlers.append(
                _file_handler(
                    config.get_debug_log_dir() / f"debug-{run_id[:8]}.log",
                    DEBUG_FILE_MAX_BYTES,
                    3,
                    formatter,
                    logging.DEBUG,
                )
            )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("hybrid_qa.logging").info(
        "Logging configured",
        extra={
            "metadata": {
                "run_id": run_id,
                "log_level": config.log_level,
                "log_format": config.log_format,
                "ci_mode": config.is_ci_mode,
                "handlers": len(handlers),
            }
        },
    )
    return root


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed flow context to every record; per-call extras win."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context):
    """
    Logger for a module, wrapped in a ContextAdapter when context is given.

    Example:
        logger = get_logger(__name__, engine="browser")
    """
    logger = logging.getLogger(name)
    return ContextAdapter(logger, context) if context else logger


def log_performance(logger, operation: str, duration: float, **metadata) -> None:
    """Record how long an operation took, in seconds."""
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )


def log_backend_call(
    logger,
    engine: str,
    method: str,
    duration: float,
    success: bool,
    **metadata: Optional[Any],
) -> None:
    """
    Record a call into a backend (device server, flow runner or browser).

    Successful calls log at DEBUG, failed ones at WARNING.
    """
    outcome = "success" if success else "failed"
    logger.log(
        logging.DEBUG if success else logging.WARNING,
        f"Backend call: {engine}.{method} {outcome} in {duration:.3f}s",
        extra={
            "metadata": {
                "engine": engine,
                "method": method,
                "duration": duration,
                "success": success,
                **metadata,
            }
        },
    )
