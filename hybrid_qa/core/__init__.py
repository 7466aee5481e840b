"""Core components for Hybrid QA."""

from .config import Config
from .exceptions import (
    HybridQAError,
    InitializationError,
    ElementNotFoundError,
    ActionExecutionError,
    AdapterEscapedError,
    ArtifactCollectionError,
    CleanupError,
    RunnerProcessError,
    ValidationError,
)
from .logging_config import setup_logging, get_logger
from .sessions import SessionRegistry, SessionStatus

__all__ = [
    "Config",
    "HybridQAError",
    "InitializationError",
    "ElementNotFoundError",
    "ActionExecutionError",
    "AdapterEscapedError",
    "ArtifactCollectionError",
    "CleanupError",
    "RunnerProcessError",
    "ValidationError",
    "setup_logging",
    "get_logger",
    "SessionRegistry",
    "SessionStatus",
]
