"""
Hybrid QA - cross-backend UI test flow execution

Runs human-authored test flows on a native-mobile session backend, a
declarative mobile flow runner and a browser backend, and aggregates the
results into one report.
"""

__version__ = "0.1.0"
__author__ = "Hybrid QA Team"

from .core.config import Config
from .core.exceptions import HybridQAError
from .core.logging_config import setup_logging
from .execution.coordinator import ExecutionCoordinator
from .orchestrator import QAOrchestrator

__all__ = [
    "Config",
    "HybridQAError",
    "setup_logging",
    "ExecutionCoordinator",
    "QAOrchestrator",
]
